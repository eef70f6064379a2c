"""
specs/repository.py - Reference spec lookup.

SpecRepository is the read-only collaborator the calculator and the
session engine resolve fabric and strap specs through. Store
implementations (memory, SQL) provide it; InMemorySpecRepository serves
a JSON catalog for the CLI and tests.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import logging

from .models import FabricSpec, StrapSpec
from ..errors import NoMatchingSpec, ValidationError

logger = logging.getLogger(__name__)


class SpecRepository(ABC):
    """Read-only access to fabric and strap specifications."""

    @abstractmethod
    def list_fabric_specs(self) -> List[FabricSpec]:
        """All fabric specs, ordered by width then name."""

    @abstractmethod
    def get_strap_specs(self) -> List[StrapSpec]:
        """All strap specs, ordered by name."""

    def get_fabric_specs_by_width(self, width_cm: float) -> List[FabricSpec]:
        """Fabric specs whose usable width equals width_cm."""
        return [s for s in self.list_fabric_specs() if s.matches_width(width_cm)]

    def get_fabric_spec(self, spec_id: int) -> Optional[FabricSpec]:
        for spec in self.list_fabric_specs():
            if spec.spec_id == spec_id:
                return spec
        return None

    def get_strap_spec(self, spec_id: int) -> Optional[StrapSpec]:
        for spec in self.get_strap_specs():
            if spec.spec_id == spec_id:
                return spec
        return None

    def available_widths(self) -> List[float]:
        return sorted({s.width_cm for s in self.list_fabric_specs()})


class InMemorySpecRepository(SpecRepository):
    """Spec repository backed by plain lists."""

    def __init__(
        self,
        fabric_specs: Iterable[FabricSpec] = (),
        strap_specs: Iterable[StrapSpec] = (),
    ):
        self._fabric: Dict[int, FabricSpec] = {s.spec_id: s for s in fabric_specs}
        self._straps: Dict[int, StrapSpec] = {s.spec_id: s for s in strap_specs}

    def add_fabric_spec(self, spec: FabricSpec) -> None:
        self._fabric[spec.spec_id] = spec

    def add_strap_spec(self, spec: StrapSpec) -> None:
        self._straps[spec.spec_id] = spec

    def list_fabric_specs(self) -> List[FabricSpec]:
        return sorted(self._fabric.values(), key=lambda s: (s.width_cm, s.name))

    def get_strap_specs(self) -> List[StrapSpec]:
        return sorted(self._straps.values(), key=lambda s: s.name)

    def get_fabric_spec(self, spec_id: int) -> Optional[FabricSpec]:
        return self._fabric.get(spec_id)

    def get_strap_spec(self, spec_id: int) -> Optional[StrapSpec]:
        return self._straps.get(spec_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemorySpecRepository":
        return cls(
            fabric_specs=[FabricSpec.from_dict(d) for d in data.get("fabric_specs", [])],
            strap_specs=[StrapSpec.from_dict(d) for d in data.get("strap_specs", [])],
        )

    @classmethod
    def from_file(cls, filepath: str) -> "InMemorySpecRepository":
        """Load a JSON catalog with 'fabric_specs' and 'strap_specs' lists."""
        path = Path(filepath)
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        repo = cls.from_dict(data)
        logger.info(
            f"Loaded spec catalog {path.name}: "
            f"{len(repo._fabric)} fabric, {len(repo._straps)} strap specs"
        )
        return repo


def select_fabric_spec(
    repository: SpecRepository,
    width_cm: float,
    spec_id: Optional[int] = None,
) -> FabricSpec:
    """
    Resolve the fabric spec for a bag of the given body width.

    Candidates are pre-filtered by usable width. With spec_id the chosen
    spec must be among the candidates; without it the first candidate is
    used.

    Raises:
        NoMatchingSpec: no spec with this width, or spec_id has another width
    """
    candidates = repository.get_fabric_specs_by_width(width_cm)
    if not candidates:
        widths = ", ".join(f"{w:g}" for w in repository.available_widths()) or "none"
        raise NoMatchingSpec(
            f"No matching fabric width {width_cm:g} cm. Available widths: {widths} cm",
            field="width_cm",
            context={"width_cm": width_cm},
        )

    if spec_id is None:
        return candidates[0]

    for spec in candidates:
        if spec.spec_id == spec_id:
            return spec

    if repository.get_fabric_spec(spec_id) is None:
        raise ValidationError(f"Unknown fabric spec {spec_id}", field="fabric_spec_id")
    raise NoMatchingSpec(
        f"Fabric spec {spec_id} does not match body width {width_cm:g} cm",
        field="fabric_spec_id",
        context={"width_cm": width_cm, "spec_id": spec_id},
    )
