"""Config settings – Settings base class."""
from __future__ import annotations

import dataclasses
from typing import Any, ClassVar

from mp_outbox.observability.logging.filters import SensitiveFieldsFilter


@dataclasses.dataclass
class Settings:
    """Base class for environment-driven settings dataclasses.

    Subclasses set ``_prefix`` and override :meth:`_validate` for
    cross-field rules; validation runs on construction, so a loaded
    instance is always usable.
    """

    _prefix: ClassVar[str] = ""

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        pass

    def as_log_dict(self) -> dict[str, Any]:
        """Field values with secrets redacted, for startup log lines."""
        return SensitiveFieldsFilter().redact_deep(dataclasses.asdict(self))


__all__ = ["Settings"]
