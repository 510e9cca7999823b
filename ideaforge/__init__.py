"""IdeaForge — org-mode project document analysis pipeline."""

__version__ = "0.1.0"
