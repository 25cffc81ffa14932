from typing import Any
from typing import Self

from pydantic import BaseModel
from pydantic import ConfigDict


class UnknownFieldUpdateError(ValueError):
    """Raised when with_updates() names a field the model does not declare."""


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models that prevent attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=False,
    )

    def with_updates(self, **updates: Any) -> Self:
        """Return a copy with the given top-level fields replaced.

        Pydantic's model_copy(update=...) silently accepts unknown keys, so they are rejected here.
        """
        unknown = sorted(set(updates) - set(type(self).model_fields))
        if unknown:
            raise UnknownFieldUpdateError(f"{type(self).__name__} has no field(s): {', '.join(unknown)}")
        return self.model_copy(update=updates)
