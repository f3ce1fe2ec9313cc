"""
Per-format heuristics for finding an AWS credentials triple in uploaded text.

Every strategy takes decoded text and returns an ExtractionResult; none of
them raise on bad input.
"""

import csv
import io
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.infrascan.models import DEFAULT_REGION, ExtractionResult

ACCESS_KEY_PATTERN = re.compile(r"AKIA[A-Z0-9]{16}")
MIN_SECRET_LENGTH = 16


class ExtractionStrategy(ABC):
    format_tag: str = ""

    @abstractmethod
    def extract(self, text: str) -> ExtractionResult:
        ...


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1].strip()
    return value


class JsonStrategy(ExtractionStrategy):
    format_tag = "json"

    ACCESS_KEY_ALIASES: Tuple[Tuple[str, ...], ...] = (
        ("accessKey",),
        ("access_key",),
        ("accessKeyId",),
        ("access_key_id",),
        ("aws_access_key_id",),
        ("AWS_ACCESS_KEY_ID",),
        ("credentials", "accessKeyId"),
        ("aws", "accessKeyId"),
        ("Credentials", "AccessKeyId"),
    )
    SECRET_KEY_ALIASES: Tuple[Tuple[str, ...], ...] = (
        ("secretKey",),
        ("secret_key",),
        ("secretAccessKey",),
        ("secret_access_key",),
        ("aws_secret_access_key",),
        ("AWS_SECRET_ACCESS_KEY",),
        ("credentials", "secretAccessKey"),
        ("aws", "secretAccessKey"),
        ("Credentials", "SecretAccessKey"),
    )
    REGION_ALIASES: Tuple[Tuple[str, ...], ...] = (
        ("region",),
        ("aws_region",),
        ("AWS_REGION",),
        ("AWS_DEFAULT_REGION",),
        ("credentials", "region"),
        ("aws", "region"),
    )

    @staticmethod
    def _probe(data: Dict[str, Any], aliases: Sequence[Tuple[str, ...]]) -> Optional[str]:
        for path in aliases:
            node: Any = data
            for key in path:
                if not isinstance(node, dict):
                    node = None
                    break
                node = node.get(key)
            if isinstance(node, str) and node.strip():
                return node.strip()
        return None

    def extract(self, text: str) -> ExtractionResult:
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            return ExtractionResult.failed(f"Invalid JSON file: {e}")
        if not isinstance(data, dict):
            return ExtractionResult.failed("Invalid JSON file: expected an object at the top level")

        access_key = self._probe(data, self.ACCESS_KEY_ALIASES)
        secret_key = self._probe(data, self.SECRET_KEY_ALIASES)
        if not access_key or not secret_key:
            return ExtractionResult.failed("Could not find AWS credentials in JSON file")

        region = self._probe(data, self.REGION_ALIASES) or DEFAULT_REGION
        return ExtractionResult.found(access_key, secret_key, region)


class TextStrategy(ExtractionStrategy):
    """
    key=value files (.env, .txt, .config, ~/.aws/credentials style).

    Lines without `=` fall back to a positional guess: an AKIA-shaped token is
    the access key and the next long line after it is taken as the secret.
    That guess can misfire on ordinary prose.
    """

    format_tag = "text"

    SECRET_KEY_NAMES = ("aws_secret_access_key", "secret_access_key", "secret_key")
    ACCESS_KEY_NAMES = ("aws_access_key_id", "access_key")
    REGION_NAMES = ("aws_region", "region")

    def extract(self, text: str) -> ExtractionResult:
        access_key: Optional[str] = None
        secret_key: Optional[str] = None
        region: Optional[str] = None

        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip().lower()
                if key.startswith("export "):
                    key = key[len("export "):].strip()
                value = _strip_quotes(value)
                # Secret names contain "access_key", so they are checked first
                if any(name in key for name in self.SECRET_KEY_NAMES):
                    secret_key = value
                elif any(name in key for name in self.ACCESS_KEY_NAMES):
                    access_key = value
                elif any(name in key for name in self.REGION_NAMES):
                    region = value
                continue

            match = ACCESS_KEY_PATTERN.search(line)
            if access_key is None and match:
                access_key = match.group(0)
            elif secret_key is None and access_key and not match and len(line) >= MIN_SECRET_LENGTH:
                secret_key = _strip_quotes(line)

        if not access_key or not secret_key:
            return ExtractionResult.failed("Could not find AWS credentials in text file")
        return ExtractionResult.found(access_key, secret_key, region)


class CsvStrategy(ExtractionStrategy):
    format_tag = "csv"

    @staticmethod
    def _find_column(headers: List[str], words: Tuple[str, str], exact: Tuple[str, ...], exclude: str = "") -> int:
        for index, header in enumerate(headers):
            if header in exact:
                return index
            if all(word in header for word in words) and not (exclude and exclude in header):
                return index
        return -1

    def _from_columns(self, headers: List[str], rows: List[List[str]]) -> Optional[ExtractionResult]:
        access_index = self._find_column(headers, ("access", "key"), ("accesskeyid", "access_key_id"), exclude="secret")
        secret_index = self._find_column(headers, ("secret", "key"), ("secretaccesskey", "secret_access_key"))
        region_index = next((i for i, h in enumerate(headers) if h in ("region", "aws_region")), -1)

        if access_index < 0 or secret_index < 0 or not rows:
            return None

        row = rows[0]

        def cell(index: int) -> str:
            return row[index] if 0 <= index < len(row) else ""

        access_key, secret_key = cell(access_index), cell(secret_index)
        if not access_key or not secret_key:
            return None
        return ExtractionResult.found(access_key, secret_key, cell(region_index) or DEFAULT_REGION)

    @staticmethod
    def _from_values(rows: List[List[str]]) -> Optional[ExtractionResult]:
        for row in rows:
            access_key = next((v for v in row if ACCESS_KEY_PATTERN.fullmatch(v)), None)
            secret_key = next(
                (v for v in row if len(v) >= MIN_SECRET_LENGTH and not ACCESS_KEY_PATTERN.fullmatch(v)),
                None,
            )
            if access_key and secret_key:
                return ExtractionResult.found(access_key, secret_key, DEFAULT_REGION)
        return None

    def extract(self, text: str) -> ExtractionResult:
        try:
            rows = [
                [cell.strip() for cell in row]
                for row in csv.reader(io.StringIO(text))
                if any(cell.strip() for cell in row)
            ]
        except csv.Error as e:
            return ExtractionResult.failed(f"Invalid CSV file: {e}")

        if not rows:
            return ExtractionResult.failed("CSV file is empty")

        headers = [h.lower() for h in rows[0]]
        data_rows = rows[1:]

        result = self._from_columns(headers, data_rows) or self._from_values(data_rows)
        if result is None:
            return ExtractionResult.failed("Could not find AWS credentials in CSV file")
        return result


class UnsupportedStrategy(ExtractionStrategy):
    format_tag = "excel"

    def extract(self, text: str) -> ExtractionResult:
        return ExtractionResult.failed(
            "Excel parsing is not supported. Please convert to CSV or JSON."
        )
