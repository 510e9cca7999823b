from .base_agent import BaseAgent
from .document_parser_agent import DocumentParserAgent
from .requirements_analysis_agent import RequirementsAnalysisAgent
from .moscow_agent import MoscowCategorizationAgent
from .kano_agent import KanoEvaluationAgent
from .dependency_agent import DependencyAnalysisAgent
from .technology_extraction_agent import TechnologyExtractionAgent
from .technology_research_agent import TechnologyResearchAgent
from .research_synthesis_agent import ResearchSynthesisAgent
from .response_processing_agent import ResponseProcessingAgent
from .feedback_integration_agent import FeedbackIntegrationAgent
from .changelog_agent import ChangelogGenerationAgent

__all__ = [
    "BaseAgent",
    "DocumentParserAgent",
    "RequirementsAnalysisAgent",
    "MoscowCategorizationAgent",
    "KanoEvaluationAgent",
    "DependencyAnalysisAgent",
    "TechnologyExtractionAgent",
    "TechnologyResearchAgent",
    "ResearchSynthesisAgent",
    "ResponseProcessingAgent",
    "FeedbackIntegrationAgent",
    "ChangelogGenerationAgent",
]
