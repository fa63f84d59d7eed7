# SQLAlchemy models - import in main.py so Base.metadata has all tables
from buildfolio.models.portfolio import ContactMessage, Experience, Portfolio, Project

__all__ = [
    "Portfolio",
    "Experience",
    "Project",
    "ContactMessage",
]
