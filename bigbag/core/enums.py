"""
bigbag Core Enumerations

All enumeration types shared by the calculator, the session engine and
the store implementations.
"""

from enum import Enum


class ProductType(str, Enum):
    """
    Big bag construction variant.
    """
    FOUR_STRAP = "four_strap"  # body tube + base panel + 4 sewn webbing straps
    TWO_STRAP = "two_strap"    # folded tube, loops formed from the body


class TopType(str, Enum):
    """Top closure construction."""
    SPOUT = "spout"
    SKIRT = "skirt"
    OPEN = "open"


class StrapRatio(str, Enum):
    """Fraction of the bag height covered by the sewn part of a strap."""
    ONE_THIRD = "1/3"
    TWO_THIRDS = "2/3"

    @property
    def fraction(self) -> float:
        return 2 / 3 if self is StrapRatio.TWO_THIRDS else 1 / 3


class WeightStrategy(str, Enum):
    """
    Which branch produced the body/base weights of a breakdown.
    """
    SPEC = "spec"        # fabric spec yarn consumption per meter
    DENSITY = "density"  # geometric areal density fallback


class WarpYarnType(str, Enum):
    """Warp yarn of a strap: self-produced PP tape or purchased multifilament."""
    PP = "PP"
    MFN = "MFN"


class Department(str, Enum):
    """
    Production departments in physical production order.
    """
    RAW_MATERIALS = "Raw materials"
    EXTRUSION = "Extrusion"
    WEAVING = "Weaving"
    LAMINATION = "Lamination"
    STRAPS = "Straps"
    CUTTING = "Cutting"
    SEWING = "Sewing"
    EXTRAS = "Extras"


class MachineType(str, Enum):
    """Shop-floor machine types."""
    LOOM = "loom"
    EXTRUDER = "extruder"
    LAMINATOR = "laminator"
    STRAP_MACHINE = "strap_machine"


class SessionKind(str, Enum):
    """
    In-progress run type.

    Looms and laminators produce fabric rolls, strap machines run sessions.
    """
    ROLL = "roll"
    STRAP_SESSION = "strap_session"


class SessionStatus(str, Enum):
    """Production session lifecycle."""
    ACTIVE = "active"
    COMPLETED = "completed"


class ShiftCode(str, Enum):
    """Work shift."""
    DAY = "day"
    NIGHT = "night"


class MaterialKind(str, Enum):
    """Kind of consumable held in an inventory batch."""
    YARN = "yarn"  # self-produced PP yarn from extrusion
    MFN = "mfn"    # purchased multifilament yarn
    RAW = "raw"    # polymer, filler, stabilizer, dye


class MaterialRole(str, Enum):
    """Role a bound batch plays in a session."""
    WARP = "warp"
    WEFT = "weft"


class VarianceLevel(str, Enum):
    """Reported vs theoretical weight classification."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class OrderPriority(str, Enum):
    """Production order priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Session kind each machine type runs; machines not listed run no sessions
MACHINE_SESSION_KINDS = {
    MachineType.LOOM: SessionKind.ROLL,
    MachineType.LAMINATOR: SessionKind.ROLL,
    MachineType.STRAP_MACHINE: SessionKind.STRAP_SESSION,
}
