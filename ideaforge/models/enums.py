from enum import Enum


class StageName(str, Enum):
    DOCUMENT_PARSER = "document_parser"
    REQUIREMENTS_ANALYSIS = "requirements_analysis"
    MOSCOW_CATEGORIZATION = "moscow_categorization"
    KANO_EVALUATION = "kano_evaluation"
    DEPENDENCY_ANALYSIS = "dependency_analysis"
    TECHNOLOGY_EXTRACTION = "technology_extraction"
    TECHNOLOGY_RESEARCH = "technology_research"
    RESEARCH_SYNTHESIS = "research_synthesis"
    RESPONSE_PROCESSING = "response_processing"
    FEEDBACK_INTEGRATION = "feedback_integration"
    CHANGELOG_GENERATION = "changelog_generation"


class IssueKind(str, Enum):
    INPUT = "input"
    PARSE_ERROR = "parse_error"
    INVALID_STRUCTURE = "invalid_structure"
    INVALID_FORMAT = "invalid_format"
    MISSING_SECTION = "missing_section"
    MISSING_TAG = "missing_tag"
    PLACEHOLDER = "placeholder"
    EMPTY_SECTION = "empty_section"
    STYLE = "style"
    TOO_MANY_ERRORS = "too_many_errors"


class MoscowCategory(str, Enum):
    MUST = "MUST"
    SHOULD = "SHOULD"
    COULD = "COULD"
    WONT = "WONT"


class KanoCategory(str, Enum):
    BASIC = "basic"
    PERFORMANCE = "performance"
    EXCITEMENT = "excitement"


class RequirementKind(str, Enum):
    FUNCTIONAL = "functional"
    TECHNICAL = "technical"


class DependencyType(str, Enum):
    REQUIRES = "REQUIRES"
    ENHANCES = "ENHANCES"
    CONFLICTS = "CONFLICTS"


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class ResearchSource(str, Enum):
    HACKERNEWS = "hackernews"
    REDDIT = "reddit"


class SourceStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rateLimited"
