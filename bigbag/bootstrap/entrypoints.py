"""
bootstrap/entrypoints.py - Application entry points

Provides the calculator CLI (`bigbag`) and the API server (`bigbag-api`).
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import argparse
import json
import logging
import sys

from ..bom import ProductParameters, compute_department_requirements, compute_unit_weight
from ..bom.models import ProductionCalculation, WeightBreakdown
from ..errors import BigBagError, ValidationError
from ..specs import InMemorySpecRepository, calculate_density, calculate_required_denier, select_fabric_spec
from ..specs.models import StrapSpec
from ..specs.repository import SpecRepository

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO", log_file: str = None, json_format: bool = False) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON format for logs
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = JSONFormatter() if json_format else logging.Formatter(LOG_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ==================== Output formatting ====================

def format_weight_table(weight: WeightBreakdown) -> str:
    lines = [f"{'Component':<20}{'Grams':>12}  Formula"]
    for name, grams in weight.components().items():
        if grams == 0:
            continue
        formula = weight.formulas.get(name[:-2], "")
        lines.append(f"{name[:-2]:<20}{grams:>12.2f}  {formula}")
    lines.append(f"{'TOTAL':<20}{weight.total_g:>12.2f}  = {weight.total_kg:.3f} kg ({weight.strategy.value})")
    return "\n".join(lines)


def format_requirements_table(calculation: ProductionCalculation) -> str:
    lines = [
        f"Order: {calculation.quantity} pcs, unit weight {calculation.unit_weight.total_kg:.3f} kg",
    ]
    for dept in calculation.departments:
        lines.append("")
        lines.append(f"[{dept.department.value}] {dept.description}")
        for item in dept.items:
            lines.append(f"  {item.name:<45}{item.quantity:>12.2f} {item.unit}")
    return "\n".join(lines)


def _emit(data: Dict[str, Any], table: str, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        print(table)


# ==================== CLI ====================

def _load_params(path: str) -> ProductParameters:
    params_path = Path(path)
    if not params_path.exists():
        raise ValidationError(f"Parameters file not found: {path}", field="params")
    with open(params_path, encoding="utf-8") as f:
        return ProductParameters.from_dict(json.load(f))


def _load_catalog(path: Optional[str]) -> Optional[SpecRepository]:
    if not path:
        return None
    if not Path(path).exists():
        raise ValidationError(f"Spec catalog not found: {path}", field="catalog")
    return InMemorySpecRepository.from_file(path)


def _strap_spec(catalog: Optional[SpecRepository], strap_spec_id: Optional[int]) -> Optional[StrapSpec]:
    if strap_spec_id is None:
        return None
    strap_spec = catalog.get_strap_spec(strap_spec_id) if catalog is not None else None
    if strap_spec is None:
        raise ValidationError(f"Unknown strap spec: {strap_spec_id}", field="strap_spec_id")
    return strap_spec


def _cmd_weight(parsed: argparse.Namespace, waste_margin: float) -> int:
    params = _load_params(parsed.params)
    catalog = _load_catalog(parsed.catalog)
    fabric_spec = None
    if catalog is not None:
        fabric_spec = select_fabric_spec(catalog, params.width_cm, parsed.spec_id)
    strap_spec = _strap_spec(catalog, parsed.strap_spec_id)
    weight = compute_unit_weight(params, fabric_spec, strap_spec)
    _emit(weight.to_dict(), format_weight_table(weight), parsed.json)
    return 0


def _cmd_requirements(parsed: argparse.Namespace, waste_margin: float) -> int:
    params = _load_params(parsed.params)
    catalog = _load_catalog(parsed.catalog)
    if catalog is None:
        raise ValidationError("A spec catalog is required for requirements", field="catalog")

    fabric_spec = select_fabric_spec(catalog, params.width_cm, parsed.spec_id)
    strap_spec = _strap_spec(catalog, parsed.strap_spec_id)

    margin = parsed.waste_margin if parsed.waste_margin is not None else waste_margin
    calculation = compute_department_requirements(
        params, parsed.quantity, fabric_spec, strap_spec, waste_margin=margin
    )
    _emit(calculation.to_dict(), format_requirements_table(calculation), parsed.json)
    return 0


def _cmd_density(parsed: argparse.Namespace, waste_margin: float) -> int:
    if parsed.target is not None:
        result = calculate_required_denier(parsed.target, parsed.weft_threads, parsed.warp_threads)
        table = (
            f"Warp: {result.warp_denier} den (standard {result.closest_standard_warp})\n"
            f"Weft: {result.weft_denier} den (standard {result.closest_standard_weft})"
        )
    else:
        result = calculate_density(
            parsed.weft_denier, parsed.weft_threads, parsed.warp_denier, parsed.warp_threads, parsed.width
        )
        table = (
            f"Density: {result.density_gsm:.2f} g/m2 (weft {result.weft_gsm:.2f}, warp {result.warp_gsm:.2f})\n"
            f"Consumption: {result.consumption_kg_per_m:.4f} kg/m "
            f"(weft {result.weft_kg_per_m:.4f}, warp {result.warp_kg_per_m:.4f})"
        )
    _emit(result.to_dict(), table, parsed.json)
    return 0


def _build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Big bag weight and production requirements calculator",
        prog="bigbag",
    )
    parser.add_argument("-c", "--config", help="Path to configuration file", default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level",
    )
    parser.add_argument("--log-file", help="Log file path", default=None)

    sub = parser.add_subparsers(dest="command", required=True)

    weight = sub.add_parser("weight", help="Unit weight breakdown of one bag")
    weight.add_argument("params", help="Product parameters JSON file")
    weight.add_argument("--catalog", help="Spec catalog JSON (fabric_specs, strap_specs)")
    weight.add_argument("--spec-id", type=int, default=None, help="Fabric spec id")
    weight.add_argument("--strap-spec-id", type=int, default=None, help="Strap spec id")
    weight.add_argument("--json", action="store_true", help="Output in JSON format")
    weight.set_defaults(handler=_cmd_weight)

    req = sub.add_parser("requirements", help="Department requirements for an order")
    req.add_argument("params", help="Product parameters JSON file")
    req.add_argument("--catalog", help="Spec catalog JSON (fabric_specs, strap_specs)")
    req.add_argument("-n", "--quantity", type=int, required=True, help="Number of bags")
    req.add_argument("--spec-id", type=int, default=None, help="Fabric spec id")
    req.add_argument("--strap-spec-id", type=int, default=None, help="Strap spec id")
    req.add_argument("--waste-margin", type=float, default=None, help="Fabric waste fraction")
    req.add_argument("--json", action="store_true", help="Output in JSON format")
    req.set_defaults(handler=_cmd_requirements)

    density = sub.add_parser("density", help="Fabric density or required denier")
    density.add_argument("--weft-denier", type=float, default=0.0)
    density.add_argument("--warp-denier", type=float, default=0.0)
    density.add_argument("--weft-threads", type=float, required=True, help="Weft threads per 10 cm")
    density.add_argument("--warp-threads", type=float, required=True, help="Warp threads per 10 cm")
    density.add_argument("--width", type=float, default=0.0, help="Fabric width, cm")
    density.add_argument("--target", type=float, default=None, help="Target density g/m2 (inverse mode)")
    density.add_argument("--json", action="store_true", help="Output in JSON format")
    density.set_defaults(handler=_cmd_density)

    return parser


def cli_main(args: List[str] = None) -> int:
    """
    CLI entry point.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code: 0 ok, 2 rejected input, 1 unexpected failure
    """
    parsed = _build_cli_parser().parse_args(args)

    log_level = "DEBUG" if parsed.verbose else parsed.log_level
    setup_logging(level=log_level, log_file=parsed.log_file)

    try:
        from .config import load_config

        config = load_config(parsed.config)
        if hasattr(parsed, "catalog") and parsed.catalog is None:
            parsed.catalog = config.storage.seed_file
        return parsed.handler(parsed, config.business.waste_margin)

    except BigBagError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def api_main(args: List[str] = None) -> None:
    """
    API server entry point.

    Args:
        args: Command line arguments
    """
    parser = argparse.ArgumentParser(
        description="Big bag production API server",
        prog="bigbag-api",
    )
    parser.add_argument("-c", "--config", help="Path to configuration file", default=None)
    parser.add_argument("-p", "--port", type=int, help="API port", default=None)
    parser.add_argument("-H", "--host", help="API host", default=None)
    parser.add_argument("-w", "--workers", type=int, help="Number of workers", default=None)
    parser.add_argument("--seed", help="Reference data seed JSON", default=None)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )

    parsed = parser.parse_args(args)

    try:
        from .app import create_app_context, run_api
        from .config import load_config

        config = load_config(parsed.config)

        # Override config with CLI args
        if parsed.port:
            config.api.port = parsed.port
        if parsed.host:
            config.api.host = parsed.host
        if parsed.workers:
            config.api.workers = parsed.workers
        if parsed.seed:
            config.storage.seed_file = parsed.seed
        if parsed.log_level:
            config.logging.level = parsed.log_level

        setup_logging(
            level=config.logging.level,
            log_file=config.logging.log_file,
            json_format=config.logging.json_logs,
        )
        run_api(create_app_context(config))

    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


def main():
    """Main entry point for the package."""
    if len(sys.argv) > 1 and sys.argv[1] == "api":
        api_main(sys.argv[2:])
    else:
        sys.exit(cli_main(sys.argv[1:]))


if __name__ == "__main__":
    main()
