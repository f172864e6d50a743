"""Bidirectional synonym table for query expansion."""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from loguru import logger

DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    # Tech
    "javascript": ["js", "ecmascript", "node", "nodejs"],
    "typescript": ["ts"],
    "python": ["py", "python3"],
    "react": ["reactjs", "react.js"],
    "vue": ["vuejs", "vue.js"],
    "angular": ["angularjs", "ng"],
    "github": ["gh", "git"],
    "stackoverflow": ["so", "stack overflow"],
    "documentation": ["docs", "doc", "reference", "manual"],
    "tutorial": ["guide", "howto", "how-to", "learn"],
    "example": ["sample", "demo", "snippet"],
    "error": ["bug", "issue", "problem", "exception", "failure"],
    "fix": ["solve", "solution", "resolve", "patch"],
    "install": ["setup", "configure", "installation"],
    "api": ["endpoint", "interface", "rest", "graphql"],
    "database": ["db", "sql", "nosql", "storage"],
    "config": ["configuration", "settings", "options"],
    "auth": ["authentication", "login", "signin", "authorization"],
    "deploy": ["deployment", "release", "publish", "ship"],
    # Abbreviations
    "repo": ["repository"],
    "pr": ["pull request", "pullrequest"],
    "mr": ["merge request"],
    "ci": ["continuous integration", "pipeline"],
    "cd": ["continuous deployment", "continuous delivery"],
    # Media
    "video": ["youtube", "vimeo", "watch"],
    "image": ["img", "picture", "photo", "graphic"],
    "music": ["song", "audio", "spotify", "soundcloud"],
    "movie": ["film", "cinema", "netflix", "stream"],
    # Commerce
    "buy": ["purchase", "order", "shop", "cart"],
    "price": ["cost", "pricing", "rate", "fee"],
    "discount": ["sale", "deal", "offer", "coupon"],
    # Social
    "post": ["article", "blog", "tweet", "message"],
    "share": ["send", "forward", "repost"],
    "comment": ["reply", "response", "feedback"],
    # Navigation
    "find": ["search", "locate", "discover", "lookup"],
    "home": ["main", "index", "landing"],
    "about": ["info", "information", "contact"],
    # Actions
    "download": ["save", "get", "fetch"],
    "upload": ["submit", "send", "post"],
    "delete": ["remove", "clear", "erase"],
    "edit": ["modify", "change", "update"],
    "create": ["new", "add", "make"],
}


class SynonymTable:
    """
    Symmetric term -> synonyms lookup.

    Looking up a synonym yields its canonical term(s) and their other
    synonyms. Instances are independent; nothing is shared at module level.
    """

    def __init__(self, mapping: Optional[Mapping[str, Iterable[str]]] = None):
        self._forward: Dict[str, List[str]] = {}
        self._reverse: Dict[str, List[str]] = {}
        for term, synonyms in (mapping or {}).items():
            self.add(term, synonyms, quiet=True)

    @classmethod
    def default(cls) -> "SynonymTable":
        return cls(DEFAULT_SYNONYMS)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]], include_defaults: bool = True) -> "SynonymTable":
        table = cls.default() if include_defaults else cls()
        for term, synonyms in mapping.items():
            table.add(term, synonyms)
        return table

    def add(self, term: str, synonyms: Iterable[str], quiet: bool = False) -> None:
        """Register `synonyms` for `term` in both directions."""
        term = term.strip().lower()
        if not term:
            return

        forward = self._forward.setdefault(term, [])
        added = []
        for syn in synonyms:
            syn = syn.strip().lower()
            if not syn or syn == term:
                continue
            if syn not in forward:
                forward.append(syn)
                added.append(syn)
            reverse = self._reverse.setdefault(syn, [])
            if term not in reverse:
                reverse.append(term)

        if added and not quiet:
            logger.debug(f"Added synonyms for '{term}': {added}")

    def lookup(self, term: str) -> List[str]:
        """Related terms for `term`, excluding the term itself."""
        return [t for t in self.expand_term(term) if t != term.lower()]

    def expand_term(self, term: str) -> List[str]:
        """The term followed by every directly or indirectly related term."""
        term = term.lower()
        expanded = {term: None}

        for syn in self._forward.get(term, []):
            expanded.setdefault(syn, None)

        for canonical in self._reverse.get(term, []):
            expanded.setdefault(canonical, None)
            for sibling in self._forward.get(canonical, []):
                expanded.setdefault(sibling, None)

        return list(expanded)

    def expand_tokens(self, tokens: Sequence[str]) -> List[str]:
        """Original tokens first, then expansions, without duplicates."""
        result = {t: None for t in tokens}
        for token in tokens:
            for term in self.expand_term(token):
                result.setdefault(term, None)
        return list(result)

    def __contains__(self, term: str) -> bool:
        term = term.lower()
        return term in self._forward or term in self._reverse

    def __len__(self) -> int:
        return len(self._forward)
