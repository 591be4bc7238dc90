from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from .resources import schemas_dir


@dataclass(frozen=True)
class SchemaRef:
    name: str
    path: Path
    schema: Dict[str, Any]


class ContractStore:
    """
    Loads `contracts/schemas/*.json` and provides validation helpers.
    Schemas are self-contained (local `$defs` only).
    """

    def __init__(self, directory: Optional[Path] = None):
        self._schemas_dir = directory if directory is not None else schemas_dir()
        self._schemas: Dict[str, SchemaRef] = {}

    @property
    def schemas_dir(self) -> Path:
        return self._schemas_dir

    def load(self) -> "ContractStore":
        if not self._schemas_dir.exists():
            raise FileNotFoundError(str(self._schemas_dir))
        for p in sorted(self._schemas_dir.glob("*.json")):
            schema = json.loads(p.read_text(encoding="utf-8"))
            self._schemas[p.name] = SchemaRef(name=p.name, path=p, schema=schema)
        return self

    def list_schema_names(self) -> List[str]:
        return sorted(self._schemas.keys())

    def _get(self, schema_name: str) -> SchemaRef:
        if not self._schemas:
            self.load()
        ref = self._schemas.get(schema_name)
        if ref is None:
            raise KeyError(schema_name)
        return ref

    def check_schemas(self) -> List[Tuple[str, str]]:
        """
        Returns a list of (schema_name, error_message) for invalid schemas.
        """
        errors: List[Tuple[str, str]] = []
        for name in self.list_schema_names():
            try:
                jsonschema.Draft202012Validator.check_schema(self._get(name).schema)
            except jsonschema.SchemaError as e:
                errors.append((name, e.message))
        return errors

    def validate(self, schema_name: str, instance: Any) -> List[str]:
        """
        Validates an instance and returns a list of error strings (empty means valid).
        """
        validator = jsonschema.Draft202012Validator(self._get(schema_name).schema)
        out = []
        for e in sorted(validator.iter_errors(instance), key=str):
            where = "/".join(str(p) for p in e.absolute_path)
            out.append(f"{where}: {e.message}" if where else e.message)
        return out

    def validate_json_file(self, schema_name: str, path: Path) -> List[str]:
        obj = json.loads(path.read_text(encoding="utf-8"))
        return self.validate(schema_name, obj)

    def validate_jsonl_file(self, schema_name: str, path: Path) -> List[str]:
        errors: List[str] = []
        with path.open("r", encoding="utf-8") as f:
            for i, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError as e:
                    errors.append("line {}: invalid json: {}".format(i, e.msg))
                    continue
                for msg in self.validate(schema_name, obj):
                    errors.append("line {}: {}".format(i, msg))
        return errors
