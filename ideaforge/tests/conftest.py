"""
Shared fixtures: a template-compliant project document and offline settings.
"""

import pytest

from ideaforge.config import Settings

SAMPLE_ORG = """#+TITLE: Grocery Planner
#+AUTHOR: Dana Reyes
#+DATE: 2026-01-05

* Project Overview
A shared grocery list for households that shop together.

* User Stories
- As a shopper, I want to check items off in the store, so that I do not buy duplicates.
- As a parent, I want to share the list with my family.

* Requirements
** Functional Requirements
*** User login :MUST:
Users sign in with email; credentials are checked by the auth service.
*** Shared lists :SHOULD:
Lists sync in real-time between household members. Requires F1.
*** Recipe import :COULD:
Import ingredients from recipe websites.
** Technical Requirements
*** Auth service :MUST:
Token-based authentication backed by PostgreSQL.
*** Offline mode :SHOULD:
The app keeps working offline and syncs later.

* Technology Choices
** Frontend Framework
React
Large ecosystem and team experience.
** Backend/Hosting
Node.js on AWS
** Database
PostgreSQL
** Authentication
Auth0

* Brainstorming
** Core Features
- Shared lists
- Barcode scanning
** Architecture Considerations
- Event sourcing for sync
** UI/UX Ideas
- Swipe to check off
** Potential Integrations
- Recipe websites
** Future Possibilities
*** Meal planning
Plan a week of meals from the list.

* Notes
Keep the first release small.

Q: Mobile first?
A: Yes, web later.

* Outstanding Questions and Concerns
- How do we handle conflicting edits
- Which stores should we partner with?

* Additional Research Subjects
- Offline-first sync strategies
** Barcode databases

* Changelog :CHANGELOG:
- v1 (2026-01-05): Initial draft
- v2 (2026-01-12): Added offline mode
  - Split requirements into groups
"""

# Same document with author feedback: one heading response, one inline response
RESPONSE_ORG = SAMPLE_ORG.replace(
    "Users sign in with email; credentials are checked by the auth service.\n",
    "Users sign in with email; credentials are checked by the auth service.\n"
    "**** Make login optional :RESPONSE:\n"
    "Guests should browse first. F1 is SHOULD for launch.\n",
).replace(
    "A: Yes, web later.\n",
    "A: Yes, web later.\n"
    ":RESPONSE: scope\n"
    "Add: Barcode scanning\n",
)


@pytest.fixture
def sample_org() -> str:
    return SAMPLE_ORG


@pytest.fixture
def response_org() -> str:
    return RESPONSE_ORG


@pytest.fixture
def offline_settings() -> Settings:
    """Mock stages, no enrichment calls, in-memory checkpoints."""
    return Settings(
        mock_mode=True,
        enrichment_enabled=False,
        checkpoint_backend="memory",
        research_batch_delay_seconds=0,
    )
