"""Sort objects into apply waves."""

from __future__ import annotations

import re
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol, TypeVar

from ..primitives.exceptions import ValidationError
from .annotations import APPLY_WAVE_ANN, DEFAULT_APPLY_WAVE

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..domain.resources import ObjectMeta


class _HasMetadata(Protocol):
    metadata: ObjectMeta


T = TypeVar("T", bound=_HasMetadata)

_INTEGER = re.compile(r"[+-]?[0-9]+")


def apply_wave_of(obj: _HasMetadata, kind: str = "Backup") -> int:
    raw = obj.metadata.annotations.get(APPLY_WAVE_ANN, "")
    if raw == "":
        return DEFAULT_APPLY_WAVE
    if not _INTEGER.fullmatch(raw):
        raise ValidationError(
            f"failed to convert {raw} in {kind} CR {obj.metadata.name} "
            "to integer: invalid syntax"
        )
    return int(raw)


def sort_by_apply_wave(resources: Iterable[T], kind: str = "Backup") -> list[list[T]]:
    """Group *resources* by wave, ascending; each group sorted by name.

    A malformed wave on any object fails the whole call.
    """
    by_wave: dict[int, list[T]] = defaultdict(list)
    for resource in resources:
        by_wave[apply_wave_of(resource, kind)].append(resource)

    return [
        sorted(by_wave[wave], key=lambda r: r.metadata.name)
        for wave in sorted(by_wave)
    ]
