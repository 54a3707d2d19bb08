"""
Policy parser for Agent-SAFE Grid.

Loads a PolicyConfig from YAML or JSON text (JSON is valid YAML). Two
document shapes are recognised:

- the policy document (``piiRedaction``, ``maxBudget``, ``advancedRules``...)
- the DSL export (``version``, ``enforcementMode``, ``rules``), whose rules
  carry only type, severity and config and get fresh ids on import

String values may reference variables with ``${name}``, taken from a
``variables`` mapping in the document and from the caller.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agentsafe.engine.catalog import new_rule
from agentsafe.exceptions import ConfigurationError
from agentsafe.models.policy import PolicyConfig
from agentsafe.models.rules import parse_rule_type


@dataclass
class ParseError:
    """
    A parsing error with location information.

    Attributes:
        message: Human-readable error description.
        file: Source the error occurred in.
        line: Line number (1-indexed), 0 when unknown.
    """

    message: str
    file: str = ""
    line: int = 0

    def __str__(self) -> str:
        location = ""
        if self.file:
            location = self.file
            if self.line > 0:
                location += f":{self.line}"
            location += ": "
        return f"{location}{self.message}"


@dataclass
class ParseResult:
    """
    Result of parsing a policy.

    Attributes:
        policy: The parsed PolicyConfig, or None if parsing failed.
        errors: Errors encountered during parsing.
        warnings: Warnings encountered during parsing.
    """

    policy: PolicyConfig | None = None
    errors: list[ParseError] = field(default_factory=list)
    warnings: list[ParseError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if parsing succeeded without errors."""
        return not self.errors and self.policy is not None

    def unwrap(self) -> PolicyConfig:
        """
        Return the parsed policy.

        Raises:
            ConfigurationError: If parsing failed.
        """
        if not self.success or self.policy is None:
            message = str(self.errors[0]) if self.errors else "Policy could not be parsed"
            raise ConfigurationError(
                message, details={"errors": [str(e) for e in self.errors]}
            )
        return self.policy


class PolicyParser:
    """
    Parses YAML or JSON policy documents into PolicyConfig objects.

    Example:
        Parsing a policy file::

            parser = PolicyParser()
            result = parser.parse_file("policies/tenant-a.yaml")

            if result.success:
                policy = result.policy
            else:
                for error in result.errors:
                    print(f"Error: {error}")

    Policy File Format:
        Basic structure::

            variables:
              monthly_limit: 250

            maxBudget: 250
            advancedRules:
              - id: budget
                type: BUDGET
                severity: high
                config:
                  limit: ${monthly_limit}
                  period: monthly
    """

    VAR_PATTERN = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)\}")

    def parse_file(
        self, path: str | Path, variables: dict[str, Any] | None = None
    ) -> ParseResult:
        """
        Parse a policy file.

        Args:
            path: Path to the YAML or JSON file.
            variables: Optional variables for substitution.

        Returns:
            ParseResult containing the parsed policy or errors.
        """
        path = Path(path)
        result = ParseResult()
        if not path.exists():
            result.errors.append(ParseError(f"Policy file not found: {path}", file=str(path)))
            return result
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            result.errors.append(ParseError(f"Failed to read file: {e}", file=str(path)))
            return result
        return self.parse_string(content, str(path), variables)

    def parse_string(
        self,
        content: str,
        source: str = "<string>",
        variables: dict[str, Any] | None = None,
    ) -> ParseResult:
        """
        Parse a policy from YAML or JSON text.

        Args:
            content: Document text.
            source: Source identifier for error messages.
            variables: Optional variables for substitution.

        Returns:
            ParseResult containing the parsed policy or errors.
        """
        result = ParseResult()
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            line = 0
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                line = mark.line + 1
            result.errors.append(ParseError(f"YAML syntax error: {e}", file=source, line=line))
            return result

        if data is None:
            result.errors.append(ParseError("Empty policy document", file=source))
            return result
        if not isinstance(data, dict):
            result.errors.append(ParseError("Policy document must be a mapping", file=source))
            return result

        merged_vars: dict[str, Any] = {}
        file_vars = data.pop("variables", None)
        if isinstance(file_vars, dict):
            merged_vars.update(file_vars)
        elif file_vars is not None:
            result.warnings.append(ParseError("'variables' must be a mapping", file=source))
        merged_vars.update(variables or {})
        data = self._substitute(data, merged_vars, source, result)

        return self.parse_data(data, source, result)

    def parse_data(
        self,
        data: dict[str, Any],
        source: str = "<data>",
        result: ParseResult | None = None,
    ) -> ParseResult:
        """
        Parse an already decoded policy document.

        Args:
            data: Policy document or DSL export.
            source: Source identifier for error messages.
            result: ParseResult to populate.

        Returns:
            ParseResult containing the parsed policy or errors.
        """
        result = result or ParseResult()
        try:
            if "rules" in data and "advancedRules" not in data and "advanced_rules" not in data:
                result.policy = self._parse_dsl(data, source, result)
            else:
                result.policy = PolicyConfig.from_dict(data)
        except ConfigurationError as e:
            result.errors.append(ParseError(e.message, file=source))
        return result

    def _parse_dsl(
        self, data: dict[str, Any], source: str, result: ParseResult
    ) -> PolicyConfig:
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise ConfigurationError("'rules' must be a list")
        mode = data.get("enforcementMode")
        if mode is not None and mode != "strict":
            result.warnings.append(
                ParseError(f"Enforcement mode '{mode}' is treated as strict", file=source)
            )

        policy = PolicyConfig(pii_redaction=False, jailbreak_detection=False)
        for item in rules:
            if not isinstance(item, dict):
                raise ConfigurationError("DSL rule must be a mapping")
            rule_type = parse_rule_type(item.get("type"))
            config = item.get("config") or {}
            if not isinstance(config, dict):
                raise ConfigurationError("DSL rule 'config' must be a mapping")
            rule = new_rule(rule_type, severity=item.get("severity", "medium"), **config)
            policy.add_rule(rule)
        return policy

    def _substitute(
        self, data: Any, variables: dict[str, Any], source: str, result: ParseResult
    ) -> Any:
        """Recursively substitute ``${name}`` references."""
        if isinstance(data, str):
            full = self.VAR_PATTERN.fullmatch(data)
            if full and full.group(1) in variables:
                # Whole-string reference keeps the variable's type
                return variables[full.group(1)]

            def replace_var(match: re.Match[str]) -> str:
                name = match.group(1)
                if name in variables:
                    return str(variables[name])
                result.warnings.append(ParseError(f"Undefined variable: {name}", file=source))
                return match.group(0)

            return self.VAR_PATTERN.sub(replace_var, data)
        if isinstance(data, dict):
            return {k: self._substitute(v, variables, source, result) for k, v in data.items()}
        if isinstance(data, list):
            return [self._substitute(item, variables, source, result) for item in data]
        return data

