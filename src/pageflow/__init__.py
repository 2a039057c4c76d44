"""
Declarative Page Automation Engine

Interprets JSON/YAML-shaped rule trees instead of imperative automation code:
- Conditional and loop step expansion for workflows
- Condition and expression evaluation against run variables
- Extraction rules that turn live pages into structured data
- Pagination over "next page" affordances
"""

__version__ = "0.1.0"
