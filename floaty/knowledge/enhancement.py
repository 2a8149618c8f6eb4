"""Keyword extraction and knowledge lookup for chat prompts.

A user message is matched against a knowledge base two ways: keywords
extracted from the message are looked up in the entries, and the entries'
own names and keywords are looked for in the message. The union of both
lookups is rendered into a block appended to the system prompt.
"""

import re
from dataclasses import dataclass, field

MIN_KEYWORD_LENGTH = 2
MAX_KEYWORDS = 10
MAX_SEGMENT_LENGTH = 4

# Never emitted by the CJK sliding window
SEGMENT_STOP_WORDS = {
    "的", "了", "在", "是", "我", "有", "和", "就", "不", "人", "都", "一", "一个",
    "上", "也", "很", "到", "说", "要", "去", "你", "会", "着", "没有", "看", "好",
    "自己", "这", "那", "里", "就是", "还是", "比较", "一些", "可能", "已经",
}

STOP_WORDS = {
    "的", "了", "在", "是", "我", "有", "和", "就", "不", "人", "都", "一", "一个",
    "上", "也", "很", "到", "说", "要", "去", "你", "会", "着", "没有", "看", "好",
    "自己", "这", "那", "里", "就是", "还是", "把", "比", "或者", "因为", "所以",
    "但是", "如果", "这样", "那样", "怎么", "什么", "哪里", "为什么", "怎样",
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "can", "this", "that", "these", "those", "i", "you", "he", "she", "it", "we",
    "they", "me", "him", "her", "us", "them",
}

CONTEXT_OPEN = "[相关知识库信息]"
CONTEXT_CLOSE = "[/相关知识库信息]"
CONTEXT_INSTRUCTION = (
    "请根据上述相关知识库信息来回答用户的问题。如果知识库中的信息与用户问题相关，请优先使用这些信息。"
    "如果知识库信息不够充分，可以结合你的通用知识来补充回答。"
)

_CJK = re.compile(r"[\u4e00-\u9fa5]")
_NOT_WORD = re.compile(r"[^\u4e00-\u9fa5a-zA-Z0-9\s]")
_LATIN_WORD = re.compile(r"[a-zA-Z0-9]+")
_LATIN_OR_SPACE = re.compile(r"[a-zA-Z0-9\s]")
_SPACES = re.compile(r"\s+")


@dataclass
class SearchResult:
    entries: list[dict] = field(default_factory=list)
    matched_keywords: list[str] = field(default_factory=list)
    relevance_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "entries": self.entries,
            "matchedKeywords": self.matched_keywords,
            "relevanceScore": self.relevance_score,
        }


# --- Keywords ---

def segment_chinese(text: str, min_length: int = MIN_KEYWORD_LENGTH) -> list[str]:
    """Every 2 to 4 character window that contains a CJK character."""
    words = []
    for start in range(len(text)):
        for length in range(min_length, min(MAX_SEGMENT_LENGTH, len(text) - start) + 1):
            word = text[start:start + length]
            if word not in SEGMENT_STOP_WORDS and _CJK.search(word):
                words.append(word)
    return words


def extract_keywords(message: str, min_length: int = MIN_KEYWORD_LENGTH, max_keywords: int = MAX_KEYWORDS) -> list[str]:
    """Distinct keywords of a message, longest first."""
    clean = _SPACES.sub(" ", _NOT_WORD.sub(" ", message or "")).strip()
    if not clean:
        return []

    words = [w.lower() for w in _LATIN_WORD.findall(clean)]
    chinese = _LATIN_OR_SPACE.sub("", clean)
    if chinese:
        words.extend(segment_chinese(chinese, min_length))

    keywords: list[str] = []
    for word in words:
        if len(word) >= min_length and word.lower() not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return sorted(keywords, key=len, reverse=True)[:max_keywords]


def base_keywords(entries: list[dict]) -> list[str]:
    """Entry names and keywords of a knowledge base, longest first."""
    found: list[str] = []
    for entry in entries:
        for candidate in [entry.get("name") or "", *(entry.get("keywords") or [])]:
            candidate = candidate.strip()
            if len(candidate) >= MIN_KEYWORD_LENGTH and candidate not in found:
                found.append(candidate)
    return sorted(found, key=len, reverse=True)


# --- Matching ---

def entry_matches(entry: dict, keywords: list[str]) -> bool:
    """True when any keyword occurs, case-insensitively, in the entry's name, keywords or explanation."""
    name = (entry.get("name") or "").lower()
    explanation = (entry.get("explanation") or "").lower()
    entry_keywords = [k.lower() for k in entry.get("keywords") or []]
    for keyword in keywords:
        needle = keyword.lower()
        if needle in name or needle in explanation or any(needle in k for k in entry_keywords):
            return True
    return False


def match_entries(entries: list[dict], keywords: list[str]) -> list[dict]:
    if not keywords:
        return []
    return [entry for entry in entries if entry_matches(entry, keywords)]


def keyword_search(entries: list[dict], keywords: list[str]) -> SearchResult:
    """Look extracted keywords up in the entries."""
    matched = match_entries(entries, keywords)
    if not matched:
        return SearchResult()

    matched_keywords: list[str] = []
    hits = 0
    for entry in matched:
        for entry_keyword in entry.get("keywords") or []:
            for keyword in keywords:
                a, b = entry_keyword.lower(), keyword.lower()
                if a in b or b in a:
                    if entry_keyword not in matched_keywords:
                        matched_keywords.append(entry_keyword)
                    hits += 1

    score = min(hits / (len(keywords) * len(matched)), 1.0)
    return SearchResult(matched, matched_keywords, score)


def reverse_search(entries: list[dict], known_keywords: list[str], user_input: str) -> SearchResult:
    """Look the knowledge base's own keywords up in the user's message."""
    text = (user_input or "").strip().lower()
    if not text or not known_keywords:
        return SearchResult()

    matched_keywords = [k for k in known_keywords if k.lower() in text or text in k.lower()]
    if not matched_keywords:
        return SearchResult()

    score = len(matched_keywords) / max(len(known_keywords) * 0.1, 1)
    return SearchResult(match_entries(entries, matched_keywords), matched_keywords, min(score, 1.0))


def hybrid_search(entries: list[dict], known_keywords: list[str], user_input: str, keywords: list[str]) -> SearchResult:
    """Union of both lookups. Entries found by both come first, then by name."""
    forward = keyword_search(entries, keywords)
    reverse = reverse_search(entries, known_keywords, user_input)

    forward_ids = {e["id"] for e in forward.entries}
    reverse_ids = {e["id"] for e in reverse.entries}
    unique: dict[str, dict] = {}
    for entry in forward.entries + reverse.entries:
        unique.setdefault(entry["id"], entry)

    ordered = sorted(
        unique.values(),
        key=lambda e: (not (e["id"] in forward_ids and e["id"] in reverse_ids), (e.get("name") or "").casefold()),
    )
    matched_keywords = list(dict.fromkeys(forward.matched_keywords + reverse.matched_keywords))
    return SearchResult(ordered, matched_keywords, max(forward.relevance_score, reverse.relevance_score))


def enhance(
    message: str,
    entries: list[dict] | None,
    known_keywords: list[str],
    max_results: int | None = None,
    min_relevance_score: float | None = None,
) -> dict:
    """Keywords of ``message`` and the knowledge found for it.

    ``entries`` is None when no knowledge base applies, which yields no results.
    """
    keywords = extract_keywords(message)
    results: list[SearchResult] = []
    if entries is not None:
        result = hybrid_search(entries, known_keywords, message, keywords)
        if not min_relevance_score or result.relevance_score >= min_relevance_score:
            if max_results:
                result.entries = result.entries[:max_results]
            results.append(result)
    return {
        "originalMessage": message,
        "extractedKeywords": keywords,
        "knowledgeResults": [r.to_dict() for r in results],
    }


# --- Prompt ---

def build_knowledge_context(entries: list[dict]) -> str:
    if not entries:
        return ""
    items = "\n\n".join(
        f"【{e.get('name') or ''}】\n关键词：{'、'.join(e.get('keywords') or [])}\n解释：{e.get('explanation') or ''}"
        for e in entries
    )
    return f"\n\n{CONTEXT_OPEN}\n{items}\n{CONTEXT_CLOSE}"


def inject_knowledge_context(system_prompt: str, context: dict) -> str:
    """Append the found entries to the system prompt; unchanged when nothing was found."""
    entries = [entry for result in context.get("knowledgeResults") or [] for entry in result["entries"]]
    if not entries:
        return system_prompt
    return system_prompt + build_knowledge_context(entries) + "\n\n" + CONTEXT_INSTRUCTION
