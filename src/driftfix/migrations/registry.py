"""
Migration registry.

Holds the ordered collection of steps known to this process. Built once at
startup and passed explicitly to the runner and trigger adapters.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from packaging.version import Version

from driftfix.exceptions import DuplicateVersionError, StepNotFoundError
from driftfix.migrations.step import ZERO_VERSION, MigrationStep, parse_version


class PendingSteps:
    """
    Steps newer than a watermark, in ascending version order.

    Iteration is lazy and can be repeated; each pass re-filters the
    registry snapshot taken when the view was created.
    """

    def __init__(self, ordered: tuple[MigrationStep, ...], current: Version, after_step: str | None = None):
        self._ordered = ordered
        self.current = current
        self.after_step = after_step

    def __iter__(self) -> Iterator[MigrationStep]:
        # Steps sharing the watermark version that were registered after the
        # last applied step are still pending.
        tie_open = False
        for step in self._ordered:
            if step.version > self.current:
                yield step
            elif step.version == self.current:
                if tie_open:
                    yield step
                elif step.name == self.after_step:
                    tie_open = True

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return next(iter(self), None) is not None

    def names(self) -> list[str]:
        return [step.name for step in self]

    def __repr__(self) -> str:
        return f"PendingSteps(current={self.current}, steps={self.names()})"


class MigrationRegistry:
    """Ordered collection of migration steps, sorted by version.

    Usage:
        registry = MigrationRegistry()
        registry.register(step)
        for step in registry.pending("0.29.0"):
            ...
    """

    def __init__(self, steps: Iterable[MigrationStep] | None = None):
        self._steps: list[MigrationStep] = []
        self._by_name: dict[str, MigrationStep] = {}
        if steps:
            self.extend(steps)

    def register(self, step: MigrationStep) -> MigrationStep:
        """
        Add a step.

        Raises:
            DuplicateVersionError: If a step with the same name is already registered
        """
        if step.name in self._by_name:
            raise DuplicateVersionError(step.name, str(step.version))
        self._steps.append(step)
        self._by_name[step.name] = step
        return step

    def extend(self, steps: Iterable[MigrationStep]) -> None:
        for step in steps:
            self.register(step)

    def get(self, name: str) -> MigrationStep:
        try:
            return self._by_name[name]
        except KeyError:
            raise StepNotFoundError(name) from None

    def ordered(self) -> tuple[MigrationStep, ...]:
        """All steps by ascending version; ties keep registration order."""
        # sorted() is stable, so registration order breaks version ties
        return tuple(sorted(self._steps, key=lambda s: s.version))

    def pending(self, current_version: str | int | Version | None = None, *, after_step: str | None = None) -> PendingSteps:
        """
        Steps with version greater than ``current_version``.

        Args:
            current_version: Applied watermark (None means nothing applied)
            after_step: Name of the last applied step at ``current_version``;
                later-registered steps sharing that version are included

        Returns:
            Lazy, restartable view of pending steps
        """
        current = ZERO_VERSION if current_version is None else parse_version(current_version)
        return PendingSteps(self.ordered(), current, after_step)

    def latest_version(self) -> Version:
        ordered = self.ordered()
        return ordered[-1].version if ordered else ZERO_VERSION

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return len(self._steps)
