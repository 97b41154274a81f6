"""Suggest skills from the intent expressed in free-text chat input."""

import logging
import re
import time
from collections.abc import Callable, Iterable

from .models import Skill

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 4
MAX_AUTOCOMPLETE = 8
DEBOUNCE_SECONDS = 0.4
MIN_INPUT_LENGTH = 10
# Dismissal is forgotten once the input shrinks below this length.
RESET_INPUT_LENGTH = 5

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "this", "that", "from", "have", "are",
        "was", "were", "been", "being", "has", "had", "will", "would", "could",
        "should", "can", "may", "might", "must", "shall", "want", "need",
        "create", "make", "generate", "build", "design", "image", "picture",
        "photo", "please", "help", "give", "show", "like", "something",
    },
)

INTENT_SKILL_MAP: dict[str, list[str]] = {
    # Video & motion
    "video": ["cinematic", "veo", "motion", "animation"],
    "cinematic": ["cinematic", "veo", "motion"],
    "movie": ["cinematic", "veo", "motion"],
    "film": ["cinematic", "veo", "motion"],
    "animation": ["veo", "motion", "animation"],
    "motion": ["veo", "cinematic", "motion"],
    "clip": ["veo", "cinematic", "social"],
    "reel": ["social", "veo", "cinematic"],
    # Product & commercial
    "product": ["product-photo", "product", "ecommerce", "commercial"],
    "ecommerce": ["product-photo", "ecommerce", "commercial"],
    "commercial": ["product-photo", "commercial"],
    "advertising": ["product-photo", "commercial", "social"],
    "marketing": ["product-photo", "commercial", "social", "text"],
    "brand": ["product-photo", "commercial", "text"],
    # Portraits & people
    "portrait": ["portrait", "headshot", "face", "character"],
    "headshot": ["portrait", "headshot"],
    "face": ["portrait", "headshot"],
    "person": ["portrait", "character"],
    "character": ["portrait", "character", "anime"],
    "selfie": ["portrait", "social"],
    # Social media
    "social": ["social", "instagram", "tiktok", "reels"],
    "instagram": ["social", "instagram"],
    "tiktok": ["social", "tiktok", "veo"],
    "reels": ["social", "veo", "cinematic"],
    "post": ["social", "instagram"],
    "story": ["social", "instagram"],
    # Text & typography
    "text": ["text", "typography", "logo"],
    "typography": ["text", "typography"],
    "logo": ["text", "logo"],
    "poster": ["text", "typography", "cinematic"],
    "banner": ["text", "typography", "social"],
    "sign": ["text", "typography"],
    "title": ["text", "typography", "cinematic"],
    # Artistic styles
    "anime": ["anime", "manga", "illustration"],
    "manga": ["anime", "manga"],
    "illustration": ["anime", "illustration", "artistic"],
    "cartoon": ["anime", "illustration"],
    "artistic": ["artistic", "creative", "abstract"],
    "creative": ["artistic", "creative", "abstract"],
    # Environments & scenes
    "landscape": ["landscape", "nature", "scenic"],
    "nature": ["landscape", "nature", "scenic"],
    "scenic": ["landscape", "scenic", "cinematic"],
    "environment": ["landscape", "cinematic"],
    "background": ["landscape", "scenic"],
    # Abstract & experimental
    "abstract": ["abstract", "artistic", "creative"],
    "experimental": ["abstract", "artistic", "creative"],
    "surreal": ["abstract", "artistic", "creative"],
    # Sequential & multi-image
    "storyboard": ["storyboard", "sequential", "multi-image", "comic", "narrative"],
    "sequential": ["storyboard", "sequential", "variations"],
    "variations": ["storyboard", "sequential", "variations"],
    "series": ["storyboard", "sequential"],
    "comic": ["storyboard", "comic", "anime"],
    "narrative": ["storyboard", "narrative", "cinematic"],
    "multiple": ["storyboard", "sequential", "variations"],
    # Editing
    "edit": ["edit", "retouch"],
    "modify": ["edit", "retouch"],
    "change": ["edit"],
    "remove": ["edit"],
    "background-edit": ["edit", "product-photo"],
}

_SKILL_REFERENCE = re.compile(r"@([\w-]+)")
_TRAILING_MENTION = re.compile(r"@([\w-]*)$")


def extract_intent_keywords(text: str) -> list[str]:
    """Split text into lower-case keywords, minus short and stop words."""
    words = re.sub(r"[^\w\s-]", " ", text.lower()).split()
    return [w for w in words if len(w) >= 3 and w not in STOP_WORDS]


def skills_for_intent(intent: str, skills: Iterable[Skill]) -> list[Skill]:
    """Return active skills relevant to one intent keyword."""
    intent = intent.lower()
    keywords = INTENT_SKILL_MAP.get(intent, [intent])

    def _matches(skill: Skill) -> bool:
        haystacks = [
            (skill.shortcut or "").lower(),
            skill.name.lower(),
            *(tag.lower() for tag in skill.tags),
            skill.description.lower(),
        ]
        return any(k in h for k in keywords for h in haystacks)

    return [s for s in skills if s.is_active and _matches(s)]


def match_skills(text: str, skills: list[Skill]) -> list[Skill]:
    """Match skills against the intents found in ``text``.

    Only keywords present in the intent table count. Results are
    de-duplicated by id and capped at ``MAX_SUGGESTIONS``.
    """
    matched: dict[str, Skill] = {}
    for keyword in extract_intent_keywords(text):
        if keyword not in INTENT_SKILL_MAP:
            continue
        for skill in skills_for_intent(keyword, skills):
            matched.setdefault(skill.id, skill)
    return list(matched.values())[:MAX_SUGGESTIONS]


def parse_skill_references(text: str, skills: Iterable[Skill]) -> list[Skill]:
    """Resolve ``@shortcut`` mentions to active skills, in mention order."""
    by_shortcut = {s.shortcut: s for s in skills if s.shortcut and s.is_active}
    found: dict[str, Skill] = {}
    for shortcut in _SKILL_REFERENCE.findall(text):
        skill = by_shortcut.get(shortcut)
        if skill is not None:
            found.setdefault(skill.id, skill)
    return list(found.values())


def autocomplete(text: str, skills: list[Skill]) -> list[Skill]:
    """List skills for the ``@query`` being typed at the end of ``text``."""
    mention = _TRAILING_MENTION.search(text)
    if mention is None:
        return []
    query = mention.group(1).lower()
    if not query:
        return skills[:MAX_AUTOCOMPLETE]
    return [
        s
        for s in skills
        if query in (s.shortcut or "").lower() or query in s.name.lower()
    ][:MAX_AUTOCOMPLETE]


def insert_shortcut(text: str, skill: Skill) -> str:
    """Prepend a skill's ``@shortcut`` to the compose text."""
    if text.strip():
        return f"@{skill.shortcut} {text}"
    return f"@{skill.shortcut} "


class SkillSuggester:
    """Debounced, dismissible skill suggestions for a compose field.

    Feed every edit to :meth:`update` and read :meth:`suggestions`; matching
    runs only once the input has been still for ``DEBOUNCE_SECONDS``.
    """

    def __init__(
        self,
        skills: list[Skill],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.skills = skills
        self.clock = clock
        self.text = ""
        self.dismissed = False
        self._changed_at = clock()

    def update(self, text: str) -> None:
        self.text = text
        self._changed_at = self.clock()
        if len(text) < RESET_INPUT_LENGTH:
            self.dismissed = False

    def dismiss(self) -> None:
        self.dismissed = True

    def suggestions(self) -> list[Skill]:
        if self.dismissed or len(self.text) < MIN_INPUT_LENGTH or "@" in self.text:
            return []
        if self.clock() - self._changed_at < DEBOUNCE_SECONDS:
            return []
        return match_skills(self.text, self.skills)

    def accept(self, skill: Skill) -> str:
        """Insert ``skill`` into the text and hide further suggestions."""
        self.text = insert_shortcut(self.text, skill)
        self.dismissed = True
        logger.debug("Inserted @%s", skill.shortcut)
        return self.text
