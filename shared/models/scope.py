"""Scope model: the isolation namespace of a memory-card index."""

from pydantic import BaseModel, ConfigDict, model_validator

GLOBAL_SCOPE = "global"


class Scope(BaseModel):
    """Either the global namespace or the namespace of one initiative.

    Scopes travel as plain strings on the wire ("global" or the initiative
    id). from_wire() and to_wire() are the only places that translate
    between both forms; everything below the API boundary works with Scope
    instances. Instances are frozen and therefore usable as dict keys.

    Attributes:
        initiative_id: None for the global scope, the initiative id otherwise.
    """

    model_config = ConfigDict(frozen=True)

    initiative_id: str | None = None

    @model_validator(mode="after")
    def _check_initiative_id(self) -> "Scope":
        if self.initiative_id is None:
            return self
        initiative_id = self.initiative_id
        if not initiative_id.strip():
            raise ValueError("Initiative id must not be empty.")
        if initiative_id == GLOBAL_SCOPE:
            raise ValueError(f"'{GLOBAL_SCOPE}' is reserved and cannot be used as initiative id.")
        # ids become directory names
        if "/" in initiative_id or "\\" in initiative_id or initiative_id in (".", ".."):
            raise ValueError(f"Invalid initiative id '{initiative_id}'.")
        return self

    @classmethod
    def global_scope(cls) -> "Scope":
        return cls()

    @classmethod
    def initiative(cls, initiative_id: str) -> "Scope":
        return cls(initiative_id=initiative_id)

    @classmethod
    def from_wire(cls, raw: "str | Scope") -> "Scope":
        """Parse the wire representation of a scope.

        Args:
            raw (str | Scope): "global", an initiative id, or an existing Scope.

        Returns:
            Scope: The parsed scope.

        Raises:
            ValueError: If the initiative id is not usable.
        """
        if isinstance(raw, Scope):
            return raw
        value = raw.strip()
        if value == GLOBAL_SCOPE:
            return cls.global_scope()
        return cls.initiative(value)

    @property
    def is_global(self) -> bool:
        return self.initiative_id is None

    def to_wire(self) -> str:
        return GLOBAL_SCOPE if self.initiative_id is None else self.initiative_id

    def path_parts(self) -> tuple[str, ...]:
        """Relative directory parts used by every on-disk store of a scope."""
        if self.initiative_id is None:
            return (GLOBAL_SCOPE,)
        return ("initiatives", self.initiative_id)

    def describe(self) -> str:
        return "global scope" if self.is_global else f"initiative '{self.initiative_id}'"

    def __str__(self) -> str:
        return self.to_wire()
