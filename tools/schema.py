"""
Parameter Schema
----------------
Declarative description of the arguments a tool accepts.

The same objects drive two things:
- structural validation of untrusted, model-generated arguments
- the JSON schema advertised to function-calling model APIs
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
import math
import re

from core.errors import validation_error


class ParameterType(str, Enum):
    """Supported parameter types."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


def _type_matches(value: Any, expected: ParameterType) -> bool:
    # bool is a subclass of int; a JSON true is never a number here
    if expected == ParameterType.STRING:
        return isinstance(value, str)
    if expected == ParameterType.BOOLEAN:
        return isinstance(value, bool)
    if expected == ParameterType.INTEGER:
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        return isinstance(value, float) and math.isfinite(value) and value.is_integer()
    if expected == ParameterType.NUMBER:
        if isinstance(value, bool):
            return False
        return isinstance(value, (int, float)) and math.isfinite(value)
    if expected == ParameterType.ARRAY:
        return isinstance(value, (list, tuple))
    if expected == ParameterType.OBJECT:
        return isinstance(value, Mapping)
    return False


@dataclass(frozen=True)
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: ParameterType
    description: str
    required: bool = True
    default: Optional[Any] = None
    enum: Optional[List[Any]] = None  # Allowed values
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_length: Optional[int] = None  # Strings and arrays
    max_length: Optional[int] = None
    pattern: Optional[str] = None  # Regex for strings
    items: Optional[ParameterType] = None  # Array item type

    def to_json_schema(self) -> Dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: Dict[str, Any] = {
            "type": self.type.value,
            "description": self.description
        }

        if self.enum:
            schema["enum"] = list(self.enum)
        if self.min_value is not None:
            schema["minimum"] = self.min_value
        if self.max_value is not None:
            schema["maximum"] = self.max_value
        if self.type == ParameterType.STRING:
            if self.min_length is not None:
                schema["minLength"] = self.min_length
            if self.max_length is not None:
                schema["maxLength"] = self.max_length
            if self.pattern:
                schema["pattern"] = self.pattern
        if self.type == ParameterType.ARRAY:
            schema["items"] = {"type": (self.items or ParameterType.STRING).value}
            if self.min_length is not None:
                schema["minItems"] = self.min_length
            if self.max_length is not None:
                schema["maxItems"] = self.max_length
        if self.default is not None:
            schema["default"] = self.default

        return schema

    def validate(self, value: Any) -> Any:
        """Validate one value; returns the normalized value."""
        name = self.name

        if not _type_matches(value, self.type):
            raise validation_error(
                f"Invalid type for {name}: expected {self.type.value}, "
                f"got {type(value).__name__}",
                name
            )

        if self.type == ParameterType.INTEGER:
            value = int(value)
        elif self.type == ParameterType.ARRAY:
            value = list(value)
        elif self.type == ParameterType.OBJECT:
            value = dict(value)

        if self.enum is not None and value not in self.enum:
            raise validation_error(
                f"Invalid value for {name}: must be one of {self.enum}", name
            )

        if self.type in (ParameterType.INTEGER, ParameterType.NUMBER):
            if self.min_value is not None and value < self.min_value:
                raise validation_error(f"{name} must be >= {self.min_value}", name)
            if self.max_value is not None and value > self.max_value:
                raise validation_error(f"{name} must be <= {self.max_value}", name)

        if self.type in (ParameterType.STRING, ParameterType.ARRAY):
            noun = "characters" if self.type == ParameterType.STRING else "items"
            if self.min_length is not None and len(value) < self.min_length:
                raise validation_error(
                    f"{name} must have at least {self.min_length} {noun}", name
                )
            if self.max_length is not None and len(value) > self.max_length:
                raise validation_error(
                    f"{name} must have at most {self.max_length} {noun}", name
                )

        if self.type == ParameterType.STRING and self.pattern:
            if re.fullmatch(self.pattern, value) is None:
                raise validation_error(
                    f"{name} does not match the required pattern {self.pattern}", name
                )

        if self.type == ParameterType.ARRAY and self.items is not None:
            for index, item in enumerate(value):
                if not _type_matches(item, self.items):
                    raise validation_error(
                        f"Invalid item {index} in {name}: expected {self.items.value}",
                        name
                    )

        return value


@dataclass(frozen=True)
class ToolSchema:
    """JSON Schema for tool parameters."""
    parameters: List[ToolParameter] = field(default_factory=list)

    def __post_init__(self):
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate parameter names: {names}")

    def validate(self, raw_arguments: Any) -> Dict[str, Any]:
        """
        Structural validation of raw arguments.

        Checks shape, required fields, unknown fields, types, enums and
        bounds. Returns a new dict with defaults filled in. Raises
        ToolError(VALIDATION_ERROR) on the first problem found.
        """
        if raw_arguments is None:
            raw_arguments = {}

        if not isinstance(raw_arguments, Mapping):
            raise validation_error(
                f"Arguments must be an object, got {type(raw_arguments).__name__}"
            )

        known = {p.name for p in self.parameters}
        for arg_name in raw_arguments:
            if arg_name not in known:
                raise validation_error(f"Unknown parameter: {arg_name}", str(arg_name))

        validated: Dict[str, Any] = {}

        for param in self.parameters:
            if param.name not in raw_arguments or raw_arguments[param.name] is None:
                if param.required:
                    raise validation_error(
                        f"Missing required parameter: {param.name}", param.name
                    )
                validated[param.name] = param.default
                continue

            validated[param.name] = param.validate(raw_arguments[param.name])

        return validated

    def to_json_schema(self, strict: bool = False) -> Dict[str, Any]:
        """
        Convert to full JSON Schema.

        strict adds additionalProperties: false, which some function-calling
        APIs reject; it is off for the Gemini-style declaration.
        """
        properties = {}
        required = []

        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)

        schema: Dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "required": required,
        }
        if strict:
            schema["additionalProperties"] = False
        return schema

    def to_declaration(self, name: str, description: str) -> Dict[str, Any]:
        """Convert to a function declaration ({name, description, parameters})."""
        return {
            "name": name,
            "description": description,
            "parameters": self.to_json_schema(),
        }

    def to_openai_function(self, name: str, description: str) -> Dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": self.to_json_schema(strict=True)
            }
        }
