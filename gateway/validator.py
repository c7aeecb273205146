# gateway/validator.py
"""
Shape validation for provider output.

A contract is a JSON-schema-like mapping (the same object handed to the
provider as its structured-output directive). Supported keywords:
type, properties, required, items, minItems. Type names are matched
case-insensitively so Gemini's upper-case schema types work unchanged.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    # bool is an int subclass; never accept it as a number
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


class ResponseValidator:
    """Parses raw provider text and checks it against an optional contract."""

    def validate(self, raw_text: str, contract: Optional[Dict[str, Any]] = None) -> Tuple[Any, bool]:
        """
        Returns (data, ok).

        Without a contract the raw text is wrapped as {"text": raw_text} and
        always accepted. With a contract the text must parse as JSON and
        match the contract's shape; on failure data is None.
        """
        if not contract:
            return {"text": raw_text}, True

        try:
            data = json.loads(raw_text.strip())
        except (ValueError, AttributeError) as e:
            logger.warning(
                "Provider output is not valid JSON",
                extra={"event": "validation_failed", "error": str(e), "preview": str(raw_text)[:200]},
            )
            return None, False

        errors = self.check_shape(data, contract)
        if errors:
            path, element, problem = errors[0]
            logger.warning(
                "Provider output does not match contract",
                extra={
                    "event": "validation_failed",
                    "path": path,
                    "problem": problem,
                    "element": element,
                    "error_count": len(errors),
                },
            )
            return None, False

        return data, True

    def check_shape(self, value: Any, contract: Dict[str, Any], path: str = "$") -> List[Tuple[str, Any, str]]:
        """
        Collect (path, offending_element, problem) tuples for every
        mismatch between `value` and `contract`.
        """
        errors: List[Tuple[str, Any, str]] = []

        expected = contract.get("type")
        if expected:
            check = _TYPE_CHECKS.get(str(expected).lower())
            if check is not None and not check(value):
                errors.append((path, value, f"expected {str(expected).lower()}"))
                return errors

        if isinstance(value, dict):
            properties = contract.get("properties") or {}
            for name in contract.get("required") or []:
                if name not in value:
                    errors.append((path, value, f"missing required field '{name}'"))
            for name, sub_contract in properties.items():
                if name in value and isinstance(sub_contract, dict):
                    errors.extend(self.check_shape(value[name], sub_contract, f"{path}.{name}"))

        elif isinstance(value, list):
            min_items = contract.get("minItems")
            # non-integer minItems is ignored like an unknown type name
            if isinstance(min_items, int) and not isinstance(min_items, bool) and len(value) < min_items:
                errors.append((path, value, f"expected at least {min_items} items"))
            items = contract.get("items")
            if isinstance(items, dict):
                for i, element in enumerate(value):
                    errors.extend(self.check_shape(element, items, f"{path}[{i}]"))

        return errors
