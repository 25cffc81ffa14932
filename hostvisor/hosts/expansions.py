from collections.abc import Mapping

from hostvisor.common.pure import pure
from hostvisor.errors import TemplatingError

_OPEN = "${"
_CLOSE = "}"
_DEFAULT_SEPARATOR = "|"


@pure
def expand(text: str, expansions: Mapping[str, str], field_name: str = "setup") -> str:
    """Substitute ${name} and ${name|default} placeholders in text.

    A '$' that does not start a placeholder is copied through. Raises TemplatingError naming
    field_name when a placeholder is unterminated, empty, or names something that is neither in
    expansions nor given a default.
    """
    parts: list[str] = []
    position = 0
    while True:
        start = text.find(_OPEN, position)
        if start == -1:
            parts.append(text[position:])
            return "".join(parts)
        end = text.find(_CLOSE, start + len(_OPEN))
        if end == -1:
            raise TemplatingError(field_name, f"unterminated placeholder at offset {start}")

        parts.append(text[position:start])
        body = text[start + len(_OPEN) : end]
        name, has_default, default = body.partition(_DEFAULT_SEPARATOR)
        if not name:
            raise TemplatingError(field_name, f"empty placeholder at offset {start}")
        if name in expansions:
            parts.append(expansions[name])
        elif has_default:
            parts.append(default)
        else:
            raise TemplatingError(field_name, f"no value for ${{{name}}}")
        position = end + len(_CLOSE)
