from __future__ import annotations

from datetime import date
from typing import Optional

from .models import ResearchParameters


def build_research_prompt(parameters: ResearchParameters, today: Optional[date] = None) -> str:
    """
    Render the generation task sent upstream for one research request.
    """
    today = today or date.today()
    modifiers = parameters.modifiers
    return f"""
Utilize Web Search to develop a singular document utilizing the following structure as the guide to provide users with a valuable research document:
Analysis Type: {parameters.capability}
Framework: {parameters.framework}

Utilize this context to gain additional insight into your research topic:
{parameters.context}

The Research Parameters you must follow for this document are:
- Scope: {modifiers.scope}
- Overview Detail: {modifiers.overview_details}
- Analytical Rigor: {modifiers.analytical_rigor}
- Perspective: {modifiers.perspective}

All web searches must acknowledge that the current date is {today.strftime("%m.%d.%Y")} when searching for the most recent data. Search for the most recent data unless otherwise specified. Always capture the most recent reliable data. The final output must be a document uploaded to the content object library. Please produce a singular document for this research.
""".strip()
