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

from data.models import Brief, DriftResult, StabilityLabel

OUTPUT_DIR = Path(__file__).parent.parent / "output" / "reports"

LABEL_COLORS = {
    StabilityLabel.DRIFT_RISK: colors.Color(0.9, 0.2, 0.2),
    StabilityLabel.WATCH: colors.Color(0.9, 0.6, 0.1),
    StabilityLabel.STABLE: colors.Color(0.2, 0.6, 0.3),
}

KEY_VALUE_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
])


def generate_drift_pdf(result: DriftResult, brief: Brief | None = None,
                       output_dir: Path | None = None) -> Path:
    """Generate a PDF drift report for one provider."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = f"drift_{result.provider_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    output_path = output_dir / filename

    doc = SimpleDocTemplate(str(output_path), pagesize=letter,
                            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
                            topMargin=0.75 * inch, bottomMargin=0.75 * inch)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("CustomTitle", parent=styles["Title"], fontSize=18, spaceAfter=12)
    heading_style = ParagraphStyle("CustomHeading", parent=styles["Heading2"], fontSize=14,
                                    spaceBefore=16, spaceAfter=8,
                                    textColor=colors.Color(0.2, 0.2, 0.4))
    body_style = styles["BodyText"]
    small_style = ParagraphStyle("Small", parent=body_style, fontSize=8, textColor=colors.grey)

    elements = []

    # --- Title ---
    elements.append(Paragraph("Provider Behavioral Drift Report", title_style))
    elements.append(Paragraph(f"Generated: {datetime.now().strftime('%B %d, %Y %I:%M %p')}", small_style))
    elements.append(Spacer(1, 12))

    # --- Provider / window ---
    elements.append(Paragraph("Provider", heading_style))
    periods = ", ".join(str(p) for p in result.periods) or "N/A"
    info_table = Table([
        ["Provider ID", result.provider_id],
        ["Periods", periods],
    ], colWidths=[1.5 * inch, 5 * inch])
    info_table.setStyle(KEY_VALUE_STYLE)
    elements.append(info_table)
    elements.append(Spacer(1, 12))

    # --- Stability ---
    elements.append(Paragraph(
        f"Stability Index: <b>{result.stability_index}</b> ({result.label.value})",
        ParagraphStyle("Score", parent=body_style, fontSize=12,
                       textColor=LABEL_COLORS[result.label])
    ))
    elements.append(Spacer(1, 8))

    score_table = Table([
        ["Drift Score", f"{result.drift_score}%"],
        ["Service Mix Drift", f"{result.service_mix_drift}%"],
        ["Intensity Drift", f"{result.intensity_drift}%"],
        ["Place-of-Service Drift", f"{result.pos_drift}%"],
    ], colWidths=[2 * inch, 4.5 * inch])
    score_table.setStyle(KEY_VALUE_STYLE)
    elements.append(score_table)

    # --- Drivers ---
    elements.append(Paragraph("Drift Drivers", heading_style))
    for i, driver in enumerate(result.drivers, 1):
        elements.append(Paragraph(f"{i}. {escape(driver)}", body_style))

    # --- Executive summary ---
    if result.executive_summary:
        elements.append(Paragraph("Executive Summary", heading_style))
        elements.append(Paragraph(escape(result.executive_summary), body_style))

    # --- Per-period metrics ---
    if result.metrics_by_period:
        elements.append(Paragraph("Metrics by Period", heading_style))
        header = [["Period", "Svc Entropy", "Top Service", "Allowed Mean",
                   "High-Int.", "POS Entropy", "Top POS"]]
        rows = [
            [str(m.period),
             f"{m.service_entropy:.3f}",
             f"{m.top_service_code} ({m.top_service_share:.0%})",
             f"${m.weighted_allowed_mean:,.2f}",
             f"{m.high_intensity_share:.0%}",
             f"{m.pos_entropy:.3f}",
             f"{m.top_pos} ({m.top_pos_share:.0%})"]
            for m in result.metrics_by_period
        ]
        metrics_table = Table(header + rows)
        metrics_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.9, 0.9, 0.95)),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ("TOPPADDING", (0, 0), (-1, -1), 3),
        ]))
        elements.append(metrics_table)

    # --- Executive brief ---
    if brief is not None:
        source = "AI-assisted" if brief.source == "ai" else "Template"
        elements.append(Paragraph(f"Executive Brief ({source})", heading_style))
        for line in brief.text.split("\n"):
            if line.strip():
                elements.append(Paragraph(escape(line), body_style))
        if brief.warning:
            elements.append(Paragraph(f"<i>{escape(brief.warning)}</i>", small_style))

    # --- Disclaimer ---
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(
        "This report is a screening signal derived from claims line-item patterns. "
        "Drift describes change between an early and a later period; it does not assess "
        "clinical correctness and does not constitute evidence of wrongdoing.",
        ParagraphStyle("Disclaimer", parent=small_style, fontSize=7, textColor=colors.grey)
    ))

    doc.build(elements)
    return output_path
