"""
raspp Configuration
===================

Dialect and behaviour settings for the preprocessor. Configuration can
come from:
- Default values (defined here)
- Keyword arguments / command-line options
- Environment variables (see Config.from_env)

The defaults describe the dialect documented in the package docstring:
`$` joins qualified names, `.` marks local labels and pseudo-ops, `$`
inside a mnemonic marks a macro that takes no immediate prefix, and `#`
is the immediate marker.
"""

from dataclasses import dataclass
import os


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_flag(name: str) -> bool | None:
    """Read a boolean environment variable, None if unset or unrecognized."""
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


@dataclass
class Config:
    """
    Preprocessor configuration.

    Attributes:
        separator: Joins scope names and label names into qualified symbols
        local_prefix: Marks a local label reference (".loop")
        pseudo_prefix: Mnemonics starting with this are pseudo-ops
        pseudo_infix: Mnemonics containing this are macros (no "#" added)
        immediate_prefix: Marker inserted before immediate literals
        alias_note: Inline note emitted with an alias definition
        argument_format: Wrapper for "@name" argument sigils
        variable_format: Wrapper for "$name" variable sigils
        anonymous_format: Name given to anonymous "{" blocks
        line_markers: Emit '# line "file"' markers at scope transitions
        strict_scopes: Treat stray or unclosed blocks as errors
        reset_anonymous_per_file: Restart anonymous block numbering per file
    """

    # ═══════════════════════════════════════════════════════════════════════
    # DIALECT
    # ═══════════════════════════════════════════════════════════════════════

    separator: str = "$"
    local_prefix: str = "."
    pseudo_prefix: str = "."
    pseudo_infix: str = "$"
    immediate_prefix: str = "#"

    # ═══════════════════════════════════════════════════════════════════════
    # OUTPUT FORMS
    # ═══════════════════════════════════════════════════════════════════════

    alias_note: str = "_({name})"
    argument_format: str = "ARG({name})"
    variable_format: str = "VAR({name})"
    anonymous_format: str = "_{index}"
    line_markers: bool = True

    # ═══════════════════════════════════════════════════════════════════════
    # POLICY
    # ═══════════════════════════════════════════════════════════════════════

    strict_scopes: bool = False
    reset_anonymous_per_file: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create a Config from environment variables.

        Environment variables (all optional):
            RASPP_SEPARATOR: Qualified-name separator (e.g. "_")
            RASPP_STRICT_SCOPES: "1"/"0" to enable/disable strict scopes
            RASPP_LINE_MARKERS: "1"/"0" to enable/disable line markers
            RASPP_RESET_ANONYMOUS: "1"/"0" for per-file anonymous numbering

        Returns:
            Config with values from environment variables
        """
        config = cls()

        if separator := os.environ.get("RASPP_SEPARATOR"):
            config.separator = separator

        if (strict := _env_flag("RASPP_STRICT_SCOPES")) is not None:
            config.strict_scopes = strict

        if (markers := _env_flag("RASPP_LINE_MARKERS")) is not None:
            config.line_markers = markers

        if (reset := _env_flag("RASPP_RESET_ANONYMOUS")) is not None:
            config.reset_anonymous_per_file = reset

        return config

    # ═══════════════════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════════════════

    def is_pseudo(self, mnemonic: str) -> bool:
        """Return True if the mnemonic is a pseudo-op or prefix-free macro."""
        return mnemonic.startswith(self.pseudo_prefix) or self.pseudo_infix in mnemonic

    def is_local(self, name: str) -> bool:
        """Return True if the name carries the local label marker."""
        if not name.startswith(self.local_prefix):
            return False
        rest = name[len(self.local_prefix):]
        return bool(rest) and not rest[0].isdigit()

    def strip_local(self, name: str) -> str:
        """Remove the local label marker, if present."""
        if self.is_local(name):
            return name[len(self.local_prefix):]
        return name
