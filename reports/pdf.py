from datetime import datetime
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from data.models import ActionItem, DataSource, GroupScanResult, ScanResult

OUTPUT_DIR = Path(__file__).parent.parent / "output" / "reports"

DIFFICULTY_COLORS = {
    "easy": "#34a36b",
    "medium": "#e6991a",
    "hard": "#e63333",
}

KEY_VALUE_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
])

HEADER_ROW_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.9, 0.9, 0.95)),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
])


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _styles() -> dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    body = styles["BodyText"]
    small = ParagraphStyle("Small", parent=body, fontSize=8, textColor=colors.grey)
    return {
        "title": ParagraphStyle("CustomTitle", parent=styles["Title"], fontSize=18, spaceAfter=12),
        "heading": ParagraphStyle("CustomHeading", parent=styles["Heading2"], fontSize=14,
                                  spaceBefore=16, spaceAfter=8,
                                  textColor=colors.Color(0.2, 0.2, 0.4)),
        "body": body,
        "small": small,
        "disclaimer": ParagraphStyle("Disclaimer", parent=small, fontSize=7,
                                     textColor=colors.grey),
    }


def _document(output_path: Path) -> SimpleDocTemplate:
    return SimpleDocTemplate(str(output_path), pagesize=letter,
                             leftMargin=0.75 * inch, rightMargin=0.75 * inch,
                             topMargin=0.75 * inch, bottomMargin=0.75 * inch)


def _action_plan(plan: tuple[ActionItem, ...], styles: dict) -> list:
    elements = []
    for item in plan:
        color = DIFFICULTY_COLORS[item.difficulty.value]
        elements.append(Paragraph(
            f"<b>{item.priority}. {escape(item.title)}</b> "
            f"<font color='{color}'>[{item.difficulty.value.upper()}]</font> "
            f"{_money(item.estimated_revenue)}/yr",
            styles["body"],
        ))
        elements.append(Paragraph(f"&nbsp;&nbsp;&nbsp;&nbsp;{escape(item.description)}", styles["body"]))
        elements.append(Paragraph(f"&nbsp;&nbsp;&nbsp;&nbsp;<i>Timeline: {item.timeline}</i>",
                                  styles["small"]))
        elements.append(Spacer(1, 4))
    return elements


def _disclaimer(styles: dict, estimated: bool) -> list:
    text = ("Revenue estimates are derived from publicly available CMS Medicare Physician "
            "&amp; Other Practitioners data and national specialty benchmarks. Actual results "
            "depend on patient eligibility, documentation and payer rules.")
    if estimated:
        text += (" Some figures are simulated because no CMS billing detail was found for "
                 "the provider.")
    return [Spacer(1, 24), Paragraph(text, styles["disclaimer"])]


def generate_scan_pdf(result: ScanResult, output_dir: Path | None = None) -> Path:
    """Generate a revenue opportunity report for one provider."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = f"revenue_{result.npi}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    output_path = output_dir / filename
    doc = _document(output_path)
    styles = _styles()
    provider = result.provider
    elements = []

    # --- Title ---
    elements.append(Paragraph("Provider Revenue Opportunity Report", styles["title"]))
    elements.append(Paragraph(
        f"Generated: {result.scanned_at.strftime('%B %d, %Y %I:%M %p')}", styles["small"]))
    elements.append(Spacer(1, 12))

    # --- Provider Info ---
    elements.append(Paragraph("Provider Information", styles["heading"]))
    location = ", ".join(p for p in (provider.city, provider.state) if p)
    info_table = Table([
        ["NPI", provider.npi],
        ["Name", " ".join(p for p in (provider.name, provider.credential) if p) or "N/A"],
        ["Specialty", provider.specialty or "N/A"],
        ["Location", location or "N/A"],
        ["Medicare Patients", f"{provider.total_patients:,}"],
        ["Data Source", "CMS" if result.data_source is DataSource.CMS else "Estimated"],
    ], colWidths=[1.75 * inch, 4.75 * inch])
    info_table.setStyle(KEY_VALUE_STYLE)
    elements.append(info_table)
    elements.append(Spacer(1, 12))

    # --- Score ---
    score = result.score
    elements.append(Paragraph(
        f"Revenue Score: <b>{score.overall}</b> ({score.tier}, ~{score.percentile}th percentile)",
        ParagraphStyle("Score", parent=styles["body"], fontSize=12,
                       textColor=colors.HexColor(score.color)),
    ))
    if not result.benchmark_matched:
        elements.append(Paragraph(
            f"No benchmark for this specialty; compared against {result.benchmark.specialty}.",
            styles["small"]))
    breakdown = score.breakdown
    score_table = Table([
        ["Coding Intensity", f"{breakdown.coding_intensity:.0%}"],
        ["Revenue per Patient", f"{breakdown.revenue_per_patient:.0%}"],
        ["Program Breadth", f"{breakdown.program_breadth:.0%}"],
    ], colWidths=[2.5 * inch, 4 * inch])
    score_table.setStyle(KEY_VALUE_STYLE)
    elements.append(Spacer(1, 6))
    elements.append(score_table)

    # --- Revenue summary ---
    elements.append(Paragraph("Revenue Summary", styles["heading"]))
    summary_table = Table([
        ["Current Annual Revenue", _money(result.current_revenue)],
        ["Missed Annual Revenue", _money(result.total_missed_revenue)],
        ["Potential Annual Revenue", _money(result.potential_revenue)],
    ], colWidths=[2.5 * inch, 4 * inch])
    summary_table.setStyle(KEY_VALUE_STYLE)
    elements.append(summary_table)

    # --- Program gaps ---
    elements.append(Paragraph("Care Management Programs", styles["heading"]))
    gap_rows = [
        [gap.program_name, gap.code, f"{gap.enrolled_patients:,} / {gap.eligible_patients:,}",
         f"{gap.capture_rate:.0%}", _money(gap.annual_gap)]
        for gap in result.program_gaps
    ]
    gap_table = Table([["Program", "Codes", "Enrolled / Eligible", "Capture", "Annual Gap"]]
                      + gap_rows,
                      colWidths=[2.2 * inch, 1.1 * inch, 1.4 * inch, 0.8 * inch, 1.0 * inch])
    gap_table.setStyle(HEADER_ROW_STYLE)
    elements.append(gap_table)

    # --- Coding ---
    coding = result.coding_gap
    elements.append(Paragraph("E&amp;M Coding Distribution", styles["heading"]))
    coding_table = Table([
        ["Level", "Provider", "Benchmark"],
        ["99213", f"{coding.current99213_pct:.0%}", f"{coding.benchmark99213_pct:.0%}"],
        ["99214", f"{coding.current99214_pct:.0%}", f"{coding.benchmark99214_pct:.0%}"],
        ["99215", f"{coding.current99215_pct:.0%}", f"{coding.benchmark99215_pct:.0%}"],
    ], colWidths=[2 * inch, 2 * inch, 2 * inch])
    coding_table.setStyle(HEADER_ROW_STYLE)
    elements.append(coding_table)
    elements.append(Spacer(1, 6))
    elements.append(Paragraph(
        f"{escape(coding.shift_description)} "
        f"(estimated {_money(coding.annual_gap)}/yr)", styles["body"]))

    # --- Action plan ---
    if result.action_plan:
        elements.append(Paragraph("Action Plan", styles["heading"]))
        elements.extend(_action_plan(result.action_plan, styles))

    elements.extend(_disclaimer(styles, result.data_source is DataSource.ESTIMATED))
    doc.build(elements)
    return output_path


def generate_group_pdf(group: GroupScanResult, output_dir: Path | None = None) -> Path:
    """Generate a practice-level report for a group scan."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = f"practice_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    output_path = output_dir / filename
    doc = _document(output_path)
    styles = _styles()
    elements = []

    elements.append(Paragraph(f"{escape(group.practice_name)}: Revenue Opportunity Report",
                              styles["title"]))
    elements.append(Paragraph(
        f"Generated: {group.scanned_at.strftime('%B %d, %Y %I:%M %p')}", styles["small"]))
    elements.append(Spacer(1, 12))

    elements.append(Paragraph("Practice Summary", styles["heading"]))
    summary_table = Table([
        ["Providers Scanned", f"{group.successful_scans} of {group.total_providers}"],
        ["Average Score", f"{group.average_score:.1f}"],
        ["Current Annual Revenue", _money(group.total_current_revenue)],
        ["Missed Annual Revenue", _money(group.total_missed_revenue)],
        ["Potential Annual Revenue", _money(group.total_potential_revenue)],
        ["Revenue Increase", f"{group.revenue_increase_pct:.1f}%"],
        ["Data Sources", f"{group.cms_data_count} CMS, {group.estimated_data_count} estimated"],
    ], colWidths=[2.5 * inch, 4 * inch])
    summary_table.setStyle(KEY_VALUE_STYLE)
    elements.append(summary_table)

    if group.specialty_breakdown:
        elements.append(Paragraph("Specialty Mix", styles["heading"]))
        rows = [[s.specialty, str(s.provider_count), _money(s.current_revenue),
                 _money(s.missed_revenue)] for s in group.specialty_breakdown]
        table = Table([["Specialty", "Providers", "Current Revenue", "Missed Revenue"]] + rows,
                      colWidths=[2.5 * inch, 1 * inch, 1.5 * inch, 1.5 * inch])
        table.setStyle(HEADER_ROW_STYLE)
        elements.append(table)

    if group.practice_action_plan:
        elements.append(Paragraph("Practice Action Plan", styles["heading"]))
        elements.extend(_action_plan(group.practice_action_plan, styles))

    elements.append(Paragraph("Providers", styles["heading"]))
    provider_rows = []
    for outcome in group.outcomes:
        if outcome.result is not None:
            scan = outcome.result
            provider_rows.append([scan.npi, scan.provider.name or "N/A", str(scan.score.overall),
                                  _money(scan.total_missed_revenue)])
        else:
            provider_rows.append([outcome.npi, outcome.status.value.upper(), "", ""])
    table = Table([["NPI", "Name", "Score", "Missed Revenue"]] + provider_rows,
                  colWidths=[1.4 * inch, 2.8 * inch, 0.8 * inch, 1.5 * inch])
    table.setStyle(HEADER_ROW_STYLE)
    elements.append(table)

    elements.extend(_disclaimer(styles, group.estimated_data_count > 0))
    doc.build(elements)
    return output_path
