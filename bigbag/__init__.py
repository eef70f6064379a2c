"""
bigbag - Production core for woven-polypropylene big bag (FIBC) manufacturing.

Two engines:
    bom       - parametric bill of materials / unit weight calculator
    sessions  - machine session engine (shift reporting, finalization,
                inventory deduction, variance check)
"""

__version__ = "1.0.0"
