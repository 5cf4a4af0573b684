"""Constants for trigger keyword classification.

A keyword's specificity class is decided by its declared shape:
- QUALIFIED_SYMBOL: paths, macros, generics, attributes (std::fs, println!, Vec<T>)
- IDENTIFIER: a single Latin token that looks like a Rust name (HashMap, read_to_string, u8)
- GENERIC: everything else, including every CJK term ("集合") and plain words

Category words below are GENERIC even when capitalized ("Collections", "Network").
"""

import re

# ---------------------------------------------------------------------------
# Symbol shapes
# ---------------------------------------------------------------------------

# std::fs, Arc::clone, Vec<T>, #[derive(Debug)], Iterator::next(), str.len
_QUALIFIED_MARKERS = ("::", "<", "#[", "(", ".")
_MACRO_SUFFIX = "!"

_SINGLE_TOKEN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# HashMap, RefCell, Clone: an uppercase letter anywhere in the declared form.
_HAS_UPPER_RE = re.compile(r"[A-Z]")
# read_to_string, u8, i32, f64: snake_case or trailing digits.
_SNAKE_OR_DIGIT_RE = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)+$|^[a-z]+[0-9]+$")

# ---------------------------------------------------------------------------
# Generic category words (compared casefolded)
# ---------------------------------------------------------------------------

_GENERIC_CATEGORY_WORDS = frozenset({
    "rust",
    "std",
    "stdlib",
    "collection",
    "collections",
    "container",
    "containers",
    "network",
    "networking",
    "filesystem",
    "threads",
    "threading",
    "concurrency",
    "memory",
    "traits",
    "types",
    "macros",
})
