from collections.abc import Mapping
from dataclasses import dataclass

from data.models import ActionItem, Category, Difficulty


@dataclass(frozen=True)
class ActionTemplate:
    title: str
    description: str
    timeline: str
    difficulty: Difficulty


PROVIDER_TEMPLATES = {
    Category.CODING: ActionTemplate(
        "Optimize E&M Coding Documentation",
        "Review documentation templates to support higher-level E&M codes. Focus on "
        "documenting medical decision-making complexity, number of diagnoses addressed, "
        "and data reviewed. Consider an audit of recent claims for undercoding patterns.",
        "Weeks 1-4",
        Difficulty.EASY,
    ),
    Category.CCM: ActionTemplate(
        "Implement Chronic Care Management (99490)",
        "Identify patients with 2+ chronic conditions. Set up the CCM consent process, "
        "care plan templates, and monthly time tracking. Start with the highest-complexity "
        "patients.",
        "Weeks 3-8",
        Difficulty.MEDIUM,
    ),
    Category.RPM: ActionTemplate(
        "Deploy Remote Patient Monitoring",
        "Partner with an RPM device vendor for blood pressure monitors and glucose meters. "
        "Enroll hypertension and diabetes patients first. Set up a monitoring dashboard and "
        "alert workflows for clinical staff.",
        "Weeks 6-12",
        Difficulty.HARD,
    ),
    Category.BHI: ActionTemplate(
        "Add Behavioral Health Integration",
        "Implement PHQ-9 depression screening at all visits. Train providers on BHI billing "
        "(99484). Develop care plans for patients screening positive.",
        "Weeks 4-10",
        Difficulty.MEDIUM,
    ),
    Category.AWV: ActionTemplate(
        "Launch Annual Wellness Visit Program",
        "Implement an AWV workflow with Health Risk Assessment forms. Train MA staff on AWV "
        "intake. Send outreach letters to Medicare patients without an AWV in the past "
        "12 months.",
        "Weeks 2-6",
        Difficulty.EASY,
    ),
}

# Practice-wide wording; {providers} is replaced with e.g. "3 providers"
PRACTICE_TEMPLATES = {
    Category.CODING: ActionTemplate(
        "Optimize E&M Coding Across Practice",
        "{providers} could benefit from documentation review and coding education. Focus on "
        "shifting appropriate visits from 99213 to 99214/99215.",
        "Weeks 1-4",
        Difficulty.MEDIUM,
    ),
    Category.CCM: ActionTemplate(
        "Launch Chronic Care Management (CCM) Program",
        "{providers} have eligible patients not enrolled in CCM. A practice-wide program "
        "with dedicated care coordinators can capture this revenue.",
        "Weeks 3-8",
        Difficulty.MEDIUM,
    ),
    Category.RPM: ActionTemplate(
        "Implement Remote Patient Monitoring (RPM)",
        "{providers} have patients who would benefit from RPM. Deploy connected devices for "
        "blood pressure, glucose, and weight monitoring.",
        "Weeks 6-12",
        Difficulty.HARD,
    ),
    Category.BHI: ActionTemplate(
        "Add Behavioral Health Integration (BHI)",
        "{providers} have patients eligible for BHI services. Integrate depression screening "
        "and behavioral health follow-up into workflows.",
        "Weeks 4-10",
        Difficulty.MEDIUM,
    ),
    Category.AWV: ActionTemplate(
        "Increase Annual Wellness Visit (AWV) Capture",
        "{providers} are under-billing AWVs. Implement proactive patient outreach and "
        "scheduling for Medicare wellness visits.",
        "Weeks 2-6",
        Difficulty.EASY,
    ),
}


def _providers_phrase(count: int) -> str:
    return f"{count} provider{'s' if count != 1 else ''}"


def build_action_plan(
    gaps: Mapping[Category, float],
    affected: Mapping[Category, int] | None = None,
    templates: Mapping[Category, ActionTemplate] = PROVIDER_TEMPLATES,
) -> tuple[ActionItem, ...]:
    """Rank every category with a positive gap into a prioritized plan.

    Items are ordered by descending dollar impact; equal amounts fall back to
    the fixed category order (coding, CCM, RPM, BHI, AWV) so identical input
    always yields an identical plan.
    """
    opportunities = [
        (category, amount) for category, amount in gaps.items() if amount > 0
    ]
    opportunities.sort(key=lambda item: (-item[1], item[0].precedence))

    plan = []
    for priority, (category, amount) in enumerate(opportunities, 1):
        template = templates[category]
        providers = affected.get(category, 1) if affected else 1
        plan.append(ActionItem(
            priority=priority,
            category=category,
            title=template.title,
            description=template.description.format(providers=_providers_phrase(providers)),
            timeline=template.timeline,
            difficulty=template.difficulty,
            estimated_revenue=amount,
            affected_providers=providers,
        ))
    return tuple(plan)
