from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import CodeLine, code_lines, collect_signature, is_comment_line, is_test_path
from qualitysentinel.engine.types import FileInfo, Finding

_SCANNED_SUFFIXES = (".kt", ".kts")


@dataclass(frozen=True, slots=True)
class SecretPattern:
    kind: str
    regex: re.Pattern[str]


# Ordered most specific first; one finding per line.
SECRET_PATTERNS: tuple[SecretPattern, ...] = (
    SecretPattern("private key block", re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----")),
    SecretPattern("AWS access key id", re.compile(r"\bAKIA[A-Z0-9]{16}\b")),
    SecretPattern(
        "AWS secret access key",
        re.compile(r"(?i)aws_?secret_?(?:access_?)?key\w*\s*[:=]\s*[\"']?(?P<value>[a-zA-Z0-9/+=]{40})"),
    ),
    SecretPattern(
        "JDBC credentials",
        re.compile(r"(?i)jdbc:[a-z0-9]+://[^\s\"']*(?:user(?:name)?|password)=(?P<value>[^\s&;\"']+)"),
    ),
    SecretPattern(
        "client secret",
        re.compile(r"(?i)client_?secret\w*\s*[:=]\s*[\"'](?P<value>[^\"']{20,})[\"']"),
    ),
    SecretPattern(
        "API key",
        re.compile(r"(?i)api_?(?:key|secret)\w*\s*[:=]\s*[\"'](?P<value>[^\"']{20,})[\"']"),
    ),
    SecretPattern(
        "access token",
        re.compile(r"(?i)(?:access|auth|bearer)_?token\w*\s*[:=]\s*[\"'](?P<value>[^\"']{20,})[\"']"),
    ),
    SecretPattern(
        "password",
        re.compile(r"(?i)(?:password|passwd|pwd)\w*\s*[:=]\s*[\"'](?P<value>[^\"']{8,})[\"']"),
    ),
    SecretPattern(
        "private key",
        re.compile(r"(?i)private_?key\w*\s*[:=]\s*[\"'](?P<value>[^\"']{20,})[\"']"),
    ),
    SecretPattern(
        "generic secret",
        re.compile(r"(?i)(?:secret|token|key)\w*\s*[:=]\s*[\"'](?P<value>[^\"'\s]{32,})[\"']"),
    ),
)

_PLACEHOLDER_MARKERS = ("example", "test", "dummy", "placeholder", "sample", "changeme", "your_", "xxx", "yyy", "zzz", "000")

_SQL_KEYWORDS_RE = re.compile(
    r"(?i)\bselect\b.+\bfrom\b|\binsert\s+into\b|\bupdate\b.+\bset\b|\bdelete\s+from\b"
)
_STRING_LITERAL_RE = re.compile(r'"(?:[^"\\]|\\.)*"')
_QUERY_ANNOTATION_RE = re.compile(r"@(?:Query|RawQuery)\s*\(")
_RAW_EXEC_RE = re.compile(r"\b(?:execSQL|rawQuery)\s*\(")
# `+` touching a string literal in the code view (literal contents are blanked).
_LITERAL_CONCAT_RE = re.compile(r'"\s*\+|\+\s*"')
_NAMED_BIND_RE = re.compile(r"(?<![\w:]):[A-Za-z_]\w*")

_LOG_CALL_RE = re.compile(
    r"\bLog\.[diwev]\s*\(|\bTimber\.\w+\s*\(|\bprintln\s*\(|\bprint\s*\(|\bSystem\.(?:out|err)\.print"
)
_SENSITIVE_WORD_RE = re.compile(
    r"(?i)password|passwd|pwd|token|secret|api[_-]?key|credit\s*card|card\s*number|\bssn\b|social\s*security"
)
_CARD_NUMBER_RE = re.compile(r"\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b")
_SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")

_PREFERENCES_RE = re.compile(r"\bgetSharedPreferences\s*\(|\bSharedPreferences\b|\bPreferenceManager\.")
_FILE_WRITE_RE = re.compile(r"\bFileOutputStream\s*\(|\.writeText\s*\(|\.writeBytes\s*\(|\bopenFileOutput\s*\(")
_WORLD_READABLE_RE = re.compile(r"\bMODE_WORLD_(?:READABLE|WRITEABLE)\b")
_STORAGE_WINDOW = 5


def is_placeholder(value: str) -> bool:
    lowered = value.lower()
    if any(marker in lowered for marker in _PLACEHOLDER_MARKERS):
        return True
    return len(set(value)) <= 1


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def _looks_like_sql(text: str) -> bool:
    return any(_SQL_KEYWORDS_RE.search(lit) for lit in _STRING_LITERAL_RE.findall(text))


def _is_concatenated(code: str, literals: Sequence[str]) -> bool:
    if _LITERAL_CONCAT_RE.search(code):
        return True
    return any("$" in lit for lit in literals)


def _first_argument_is_built(raw: str, code: str) -> bool:
    """True when the SQL argument of `rawQuery`/`execSQL` is concatenated or templated."""

    match = _RAW_EXEC_RE.search(code)
    if match is None:
        return False
    depth = 0
    end = len(code)
    for pos in range(match.end(), len(code)):
        ch = code[pos]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                end = pos
                break
            depth -= 1
        elif ch == "," and depth == 0:
            end = pos
            break
    return "+" in code[match.end() : end] or "$" in raw[match.end() : end]


class SecurityAnalyzer(BaseAnalyzer):
    """Hardcoded secrets, SQL injection, sensitive logging and unencrypted storage."""

    analyzer_id = "security"
    name = "Security Analyzer"
    category = "security"
    description = "Checks for hardcoded secrets, SQL injection, sensitive data in logs and insecure storage."

    def applies_to(self, file: FileInfo) -> bool:
        return file.relative_path.endswith(_SCANNED_SUFFIXES) and not is_test_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings = self._check_secrets(file, lines)
        findings.extend(self._check_sql_injection(file, lines))
        findings.extend(self._check_logging(file, lines))
        findings.extend(self._check_storage(file, lines))
        return findings

    # -- secrets -----------------------------------------------------------

    def _check_secrets(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for line in lines:
            raw = line.raw
            if not raw.strip() or is_comment_line(raw):
                continue
            for pattern in SECRET_PATTERNS:
                match = pattern.regex.search(raw)
                if match is None:
                    continue
                value = match.groupdict().get("value") or match.group(0)
                # Values resolved from the build at compile time are not hardcoded.
                rhs = raw.split("=", 1)[1] if "=" in raw else raw
                if "BuildConfig." in rhs or is_placeholder(value):
                    break
                findings.append(
                    self._finding(
                        file,
                        rule="hardcoded-secret",
                        line=line.line_no,
                        priority="critical",
                        effort="small",
                        title=f"Hardcoded Secret: {pattern.kind}",
                        description=(
                            f"Line {line.line_no} embeds a {pattern.kind} (`{_mask(value)}`) in source; "
                            "anyone with the APK or the repository can read it."
                        ),
                        recommendation=(
                            "Move the value to local.properties or a secrets manager, inject it through "
                            "`BuildConfig`, and rotate the exposed credential."
                        ),
                        snippet=raw.replace(value, _mask(value)) if value else raw,
                        before='const val API_KEY = "sk_live_..."',
                        after="val apiKey = BuildConfig.API_KEY",
                        references=("https://developer.android.com/privacy-and-security/security-tips",),
                    )
                )
                break
        return findings

    # -- SQL injection -----------------------------------------------------

    def _check_sql_injection(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        index = 0
        while index < len(lines):
            line = lines[index]
            raw = line.raw
            if not raw.strip() or is_comment_line(raw):
                index += 1
                continue

            if _QUERY_ANNOTATION_RE.search(line.code):
                _text, end = collect_signature(lines, index)
                joined_raw = " ".join(l.raw.strip() for l in lines[index : end + 1])
                joined_code = " ".join(l.code for l in lines[index : end + 1])
                if self._is_injectable(joined_raw, joined_code):
                    findings.append(self._sql_finding(file, line))
                index = end + 1
                continue

            if self._is_injectable(raw, line.code) or _first_argument_is_built(raw, line.code):
                findings.append(self._sql_finding(file, line))
            index += 1
        return findings

    @staticmethod
    def _is_injectable(raw: str, code: str) -> bool:
        literals = _STRING_LITERAL_RE.findall(raw)
        if not literals or not _looks_like_sql(raw):
            return False
        # Named bind parameters mean the driver does the escaping.
        if any(_NAMED_BIND_RE.search(lit) for lit in literals):
            return False
        return _is_concatenated(code, literals)

    def _sql_finding(self, file: FileInfo, line: CodeLine) -> Finding:
        return self._finding(
            file,
            rule="sql-injection",
            line=line.line_no,
            priority="critical",
            effort="medium",
            title="Potential SQL Injection",
            description="A SQL statement is assembled from string concatenation or templates.",
            recommendation="Use bind parameters (`:name` in Room, `?` with selectionArgs) instead of building SQL text.",
            snippet=line.raw,
            before='db.rawQuery("SELECT * FROM users WHERE name = \'" + name + "\'", null)',
            after='db.rawQuery("SELECT * FROM users WHERE name = ?", arrayOf(name))',
            references=("https://owasp.org/www-community/attacks/SQL_Injection",),
        )

    # -- logging -----------------------------------------------------------

    def _check_logging(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for line in lines:
            if _LOG_CALL_RE.search(line.code) is None:
                continue
            raw = line.raw
            if not (_SENSITIVE_WORD_RE.search(raw) or _CARD_NUMBER_RE.search(raw) or _SSN_RE.search(raw)):
                continue
            findings.append(
                self._finding(
                    file,
                    rule="sensitive-logging",
                    line=line.line_no,
                    priority="high",
                    effort="trivial",
                    title="Sensitive Data in Logs",
                    description="This log statement may write credentials or personal data to logcat.",
                    recommendation="Remove the value from the message, or log a redacted form.",
                    snippet=raw,
                )
            )
        return findings

    # -- storage -----------------------------------------------------------

    def _check_storage(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            code = line.code
            if _WORLD_READABLE_RE.search(code):
                findings.append(
                    self._finding(
                        file,
                        rule="insecure-storage",
                        line=line.line_no,
                        priority="high",
                        effort="small",
                        title="World-Readable Storage Mode",
                        description="Other apps on the device can read or modify this file.",
                        recommendation="Use `Context.MODE_PRIVATE`.",
                        snippet=line.raw,
                        auto_fixable=True,
                        auto_fix="replace:MODE_PRIVATE",
                    )
                )
                continue

            preferences = _PREFERENCES_RE.search(code) is not None and "Encrypted" not in code
            file_write = _FILE_WRITE_RE.search(code) is not None and "encrypt" not in code.lower()
            if not (preferences or file_write):
                continue
            window = lines[max(index - _STORAGE_WINDOW, 0) : index + _STORAGE_WINDOW + 1]
            if not any(_SENSITIVE_WORD_RE.search(l.raw) for l in window):
                continue
            target = "SharedPreferences" if preferences else "file"
            findings.append(
                self._finding(
                    file,
                    rule="insecure-storage",
                    line=line.line_no,
                    priority="high",
                    effort="medium",
                    title=f"Sensitive Data in Unencrypted {target}",
                    description=f"Sensitive values are written near this unencrypted {target} access.",
                    recommendation="Use EncryptedSharedPreferences or EncryptedFile from androidx.security.",
                    snippet=line.raw,
                    before='context.getSharedPreferences("auth", MODE_PRIVATE)',
                    after="EncryptedSharedPreferences.create(context, \"auth\", masterKey, ...)",
                    references=("https://developer.android.com/topic/security/data",),
                )
            )
        return findings
