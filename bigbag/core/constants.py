"""
bigbag Business Constants

Construction allowances, fixed component weights and business thresholds
used by the BOM calculator and the machine session engine.

All lengths are centimeters unless the name says otherwise.
"""

import math

# ==================== Body / Base Allowances ====================

# Four-strap body tube: fold-in allowance on top of the bag height
BODY_ALLOWANCE_WITH_SPOUTS_CM = 10.0  # top or bottom spout present
BODY_ALLOWANCE_PLAIN_CM = 8.0  # open / skirt top, no bottom spout

# Four-strap base panel is cut square at base size + seam allowance
BASE_SEAM_ALLOWANCE_CM = 10.0

# Two-strap star base is folded from the body tube: base / constant
STAR_BASE_FLATTENING = 1.55

# Number of fabric layers counted by the geometric body fallback
BODY_LAYER_COUNT = 4

# ==================== Closures ====================

SPOUT_SEAM_ALLOWANCE_CM = 3.0  # added to the spout circumference
SKIRT_HEIGHT_ALLOWANCE_CM = 5.0  # added to the skirt height

# ==================== Straps / Sleeves ====================

STRAPS_PER_BAG = 4

# Two-strap handles are fabric sleeves, not webbing
SLEEVES_PER_BAG = 2
SLEEVE_WIDTH_M = 0.27
SLEEVE_HEIGHT_M = 0.20
SLEEVE_DENSITY_GSM = 100.0
SLEEVE_SEAM_CM = 20.0  # attachment seam per sleeve

# ==================== Fixed Accessories (grams) ====================

NARROW_RIBBON_FOUR_STRAP_G = 13.0  # 2 runs: 2cm x 130cm x 2 layers x 0.05
NARROW_RIBBON_TWO_STRAP_G = 6.5  # 1 run:  1cm x 130cm x 1 layer  x 0.05
INFO_POCKET_G = 5.0  # A4 document pocket

# ==================== Liner ====================

POLYETHYLENE_DENSITY_G_CM3 = 0.92
MICRONS_PER_CM = 10000.0

# ==================== Unit Conversions ====================

GSM_TO_G_PER_CM2 = 1 / 10000.0  # g/m² -> g/cm²
CM_PER_M = 100.0
G_PER_KG = 1000.0

PI = math.pi

# ==================== Business Rules ====================

# Fabric meterage waste margin applied to order requirements (2%)
DEFAULT_WASTE_MARGIN = 0.02

# Variance classification thresholds, percent of theoretical weight
DEFAULT_VARIANCE_OK_PCT = 5.0
DEFAULT_VARIANCE_WARNING_PCT = 10.0

# ==================== Units (emitted verbatim) ====================

UNIT_KG = "kg"
UNIT_M = "m"
UNIT_M_PER_PIECE = "m/шт"
UNIT_PIECES = "шт"
