from __future__ import annotations

import ast
import io
import keyword
import logging
import re
import tokenize
from typing import Any, Dict, Iterable, Mapping

from simpleeval import DEFAULT_FUNCTIONS, EvalWithCompoundTypes, InvalidExpression

from gmail_blade.errors import ConditionError

logger = logging.getLogger(__name__)

LITERALS: Dict[str, Any] = {"true": True, "false": False, "nil": None}


def _matches(text: Any, pattern: str) -> bool:
    if isinstance(text, (list, tuple)):
        return any(re.search(pattern, str(item)) for item in text)
    return re.search(pattern, "" if text is None else str(text)) is not None


def _contains(haystack: Any, needle: Any) -> bool:
    """Case-insensitive substring test on a string or on any item of a list."""
    if haystack is None or needle is None:
        return False
    needle = str(needle).lower()
    if isinstance(haystack, str):
        return needle in haystack.lower()
    return any(needle in str(item).lower() for item in haystack)


def _lower(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [str(v).lower() for v in value]
    return "" if value is None else str(value).lower()


FUNCTIONS: Dict[str, Any] = dict(
    DEFAULT_FUNCTIONS,
    matches=_matches,
    contains=_contains,
    lower=_lower,
    any=any,
    all=all,
    len=len,
)


class AbsentNamespace(dict):
    """Bound for a declared prefetch that produced no data. Every field reads as nil."""

    def __missing__(self, key: str) -> None:
        return None


def _rewrite_keyword_attributes(source: str) -> str:
    """
    Python keywords cannot follow a dot, but ``message.from`` is the natural way
    to address the sender list. Rewrite ``x.<keyword>`` into ``x["<keyword>"]``.
    """
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(source).readline))
    except (tokenize.TokenError, SyntaxError) as exc:
        raise ConditionError(f"tokenize condition: {exc}") from exc

    out: list[tuple[int, str]] = []
    changed = False
    prev = None
    for tok in tokens:
        if (
            tok.type == tokenize.NAME
            and keyword.iskeyword(tok.string)
            and prev is not None
            and prev.type == tokenize.OP
            and prev.string == "."
        ):
            out.pop()
            out.extend([(tokenize.OP, "["), (tokenize.STRING, repr(tok.string)), (tokenize.OP, "]")])
            changed = True
        else:
            out.append((tok.type, tok.string))
        prev = tok

    if not changed:
        return source
    return tokenize.untokenize(out)


class Condition:
    """A filter condition compiled once at config load and evaluated per message."""

    def __init__(self, source: str, text: str, parsed: Any) -> None:
        self.source = source
        self._text = text
        self._parsed = parsed

    @classmethod
    def compile(cls, source: str) -> "Condition":
        text = source.strip()
        if not text:
            raise ConditionError("empty condition")
        if "\n" in text:
            # Block scalars in YAML keep line breaks; parentheses make them continuations.
            text = f"({text})"
        text = _rewrite_keyword_attributes(text)
        try:
            # A condition is a single expression, never a statement.
            ast.parse(text, mode="eval")
            parsed = EvalWithCompoundTypes().parse(text)
        except (SyntaxError, InvalidExpression) as exc:
            raise ConditionError(f"compile condition {source!r}: {exc}") from exc
        return cls(source, text, parsed)

    def evaluate(self, namespaces: Mapping[str, Any]) -> Any:
        names = dict(LITERALS)
        names.update(namespaces)
        evaluator = EvalWithCompoundTypes(names=names, functions=FUNCTIONS)
        return evaluator.eval(self._text, previously_parsed=self._parsed)

    def matches(self, namespaces: Mapping[str, Any]) -> bool:
        # Only an exact boolean True counts as a match.
        try:
            result = self.evaluate(namespaces)
        except Exception as exc:
            logger.error("Failed to run expression condition=%r error=%s", self.source, exc)
            return False
        return result is True

    def __repr__(self) -> str:
        return f"Condition({self.source!r})"


def bind_namespaces(
    message: Mapping[str, Any],
    prefetched: Mapping[str, Mapping[str, Any]],
    declared: Iterable[str] = (),
) -> Dict[str, Any]:
    """Build the evaluation environment for one rule."""
    env: Dict[str, Any] = {"message": message}
    for namespace in declared:
        env[namespace] = AbsentNamespace()
    env.update(prefetched)
    return env
