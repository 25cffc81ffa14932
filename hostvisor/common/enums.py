from enum import StrEnum


class UpperCaseStrEnum(StrEnum):
    """A StrEnum that automatically converts enum member names to uppercase values."""

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.upper()


class KebabCaseStrEnum(StrEnum):
    """A StrEnum whose auto() values are the lowercased member names with underscores turned into hyphens.

    Persisted host documents store method names such as "legacy-ssh" and "user-data".
    """

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.lower().replace("_", "-")
