import pytest

from src.skinny_studio.intents import (
    MAX_SUGGESTIONS,
    SkillSuggester,
    autocomplete,
    extract_intent_keywords,
    insert_shortcut,
    match_skills,
    parse_skill_references,
    skills_for_intent,
)
from src.skinny_studio.models import Skill
from src.skinny_studio.skills import BUILT_IN_SKILLS, load_skills


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def skills():
    return list(BUILT_IN_SKILLS)


def test_extract_keywords() -> None:
    keywords = extract_intent_keywords("I want to create a product photo for Instagram!")
    assert "product" in keywords
    assert "instagram" in keywords
    assert "for" not in keywords
    assert "photo" not in keywords


def test_match_product_instagram(skills) -> None:
    matched = match_skills("I want to create a product photo for Instagram", skills)
    ids = [s.id for s in matched]
    assert "builtin-product" in ids
    assert "builtin-social" in ids
    assert len(matched) <= MAX_SUGGESTIONS
    assert len(ids) == len(set(ids))


def test_match_ignores_unknown_keywords(skills) -> None:
    assert match_skills("zebra xylophone quartz", skills) == []


def test_skills_for_intent_skips_inactive() -> None:
    skills = [
        Skill(id="a", name="Portrait", shortcut="portrait", tags=["portrait"]),
        Skill(id="b", name="Old portrait", shortcut="old", is_active=False),
    ]
    assert [s.id for s in skills_for_intent("headshot", skills)] == ["a"]


def test_parse_skill_references(skills) -> None:
    found = parse_skill_references("@product white sneaker @nope @product", skills)
    assert [s.shortcut for s in found] == ["product"]


def test_autocomplete(skills) -> None:
    assert autocomplete("hello", skills) == []
    assert len(autocomplete("hello @", skills)) == 8
    assert [s.shortcut for s in autocomplete("use @port", skills)] == ["portrait"]


def test_insert_shortcut(skills) -> None:
    product = next(s for s in skills if s.shortcut == "product")
    assert insert_shortcut("", product) == "@product "
    assert insert_shortcut("a sneaker", product) == "@product a sneaker"


def test_suggester_debounce(skills) -> None:
    clock = FakeClock()
    suggester = SkillSuggester(skills, clock=clock)
    suggester.update("I want to create a product photo for Instagram")

    clock.now += 0.1
    assert suggester.suggestions() == []

    clock.now += 0.4
    suggestions = suggester.suggestions()
    assert 0 < len(suggestions) <= MAX_SUGGESTIONS


def test_suggester_minimum_length_and_mentions(skills) -> None:
    clock = FakeClock()
    suggester = SkillSuggester(skills, clock=clock)
    suggester.update("product")
    clock.now += 1
    assert suggester.suggestions() == []

    suggester.update("@product for instagram")
    clock.now += 1
    assert suggester.suggestions() == []


def test_suggester_dismiss_resets_on_short_input(skills) -> None:
    clock = FakeClock()
    suggester = SkillSuggester(skills, clock=clock)
    suggester.update("product shot for instagram")
    suggester.dismiss()
    clock.now += 1
    assert suggester.suggestions() == []

    suggester.update("abc")
    suggester.update("product shot for instagram")
    clock.now += 1
    assert suggester.suggestions() != []


def test_suggester_accept(skills) -> None:
    suggester = SkillSuggester(skills, clock=FakeClock())
    suggester.update("a product shot")
    product = next(s for s in skills if s.shortcut == "product")
    assert suggester.accept(product) == "@product a product shot"
    assert suggester.dismissed


def test_load_skills_overrides_builtin(tmp_path) -> None:
    path = tmp_path / "skills.json"
    path.write_text('[{"id": "mine", "name": "My Product", "shortcut": "product"}]')
    skills = load_skills(path)
    product = [s for s in skills if s.shortcut == "product"]
    assert [s.id for s in product] == ["mine"]
    assert len(skills) == len(BUILT_IN_SKILLS)


def test_load_skills_invalid(tmp_path) -> None:
    path = tmp_path / "skills.json"
    path.write_text('[{"name": "missing id"}]')
    with pytest.raises(ValueError, match="Failed to load skills"):
        load_skills(path)
