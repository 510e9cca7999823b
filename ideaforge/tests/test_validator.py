"""
Tests: template validation and scoring.

Run with:
    pytest ideaforge/tests/test_validator.py -v
"""

from ideaforge.models.enums import IssueKind
from ideaforge.parsing.orgmode_parser import parse_org
from ideaforge.parsing.orgmode_validator import compute_score, requirement_leaves, validate_document


def _validate(text: str):
    return validate_document(parse_org(text).document)


class TestCompliantDocument:
    def test_full_template_scores_100(self, sample_org):
        result = _validate(sample_org)
        assert result.errors == []
        assert result.warnings == []
        assert result.is_valid
        assert result.score == 100

    def test_response_children_do_not_break_requirements(self, response_org):
        result = _validate(response_org)
        assert result.is_valid
        assert result.score == 100


class TestMissingSections:
    def test_missing_required_section_is_error(self, sample_org):
        text = sample_org.replace("* Brainstorming\n", "* Ideas\n")
        result = _validate(text)
        assert not result.is_valid
        assert any(e.message == "Missing required section: Brainstorming" for e in result.errors)

    def test_missing_subsection_is_error(self, sample_org):
        text = sample_org.replace("** Technical Requirements\n", "** Tech Requirements\n")
        result = _validate(text)
        messages = [e.message for e in result.errors]
        assert "Missing required subsection: Requirements > Technical Requirements" in messages
        # the renamed heading is also unexpected
        assert any("Unexpected subsection under Requirements" in w.message for w in result.warnings)

    def test_missing_title_is_warning(self, sample_org):
        result = _validate(sample_org.replace("#+TITLE: Grocery Planner\n", ""))
        assert result.is_valid
        assert any(w.message == "Document is missing #+TITLE" for w in result.warnings)
        assert result.score == 98

    def test_missing_optional_section_is_warning(self, sample_org):
        text = sample_org.split("* Notes\n")[0]
        result = _validate(text)
        assert result.is_valid
        missing = [w.section for w in result.warnings if w.message.startswith("Optional section missing")]
        assert missing == [
            "Notes",
            "Outstanding Questions and Concerns",
            "Additional Research Subjects",
            "Changelog",
        ]

    def test_legacy_questions_spelling_accepted(self, sample_org):
        text = sample_org.replace(
            "* Outstanding Questions and Concerns", "* Oustanding Questions and Concerns"
        )
        assert _validate(text).score == 100


class TestRequirementChecks:
    def test_requirement_without_moscow_tag(self, sample_org):
        text = sample_org.replace("*** Recipe import :COULD:", "*** Recipe import")
        result = _validate(text)
        tag_warnings = [w for w in result.warnings if w.kind == IssueKind.MISSING_TAG]
        assert len(tag_warnings) == 1
        assert "Recipe import" in tag_warnings[0].message

    def test_requirement_without_description(self, sample_org):
        text = sample_org.replace("Import ingredients from recipe websites.\n", "")
        result = _validate(text)
        assert any(w.message == "Requirement 'Recipe import' has no description" for w in result.warnings)

    def test_requirement_leaves_skip_groups(self):
        text = (
            "* Requirements\n** Functional Requirements\n*** Accounts\n"
            "**** Sign up :MUST:\nx\n**** Sign in :MUST:\ny\n*** Search :SHOULD:\nz\n"
        )
        doc = parse_org(text).document
        group = doc.find_section("Requirements").find_child("Functional Requirements")
        assert [leaf.heading for leaf in requirement_leaves(group)] == ["Sign up", "Sign in", "Search"]


class TestScore:
    def test_formula(self):
        assert compute_score(0, 0) == 100
        assert compute_score(1, 3) == 84
        assert compute_score(12, 0) == 0

    def test_placeholders_are_warnings(self, sample_org):
        text = sample_org.replace("#+AUTHOR: Dana Reyes", "#+AUTHOR: [Your Name]").replace(
            "** Core Features", "** Core Features\n*** [Feature]\nTBD"
        )
        result = _validate(text)
        kinds = [w.kind for w in result.warnings]
        assert kinds.count(IssueKind.PLACEHOLDER) == 2
        assert result.score == 96
