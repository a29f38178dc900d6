"""
Monthly time reports: per-worker PDF and the admin Excel summary.
"""
import io
from typing import Any, Dict, Iterable, List

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from timesheet import config
from timesheet.helpers import MONTHS
from timesheet.shift_time import from_storage, is_overtime, round_hours

POSITION_LABELS = {"worker": "Worker", "rider": "Rider", "monthly": "Monthly"}
EXCEL_GROUPS = {"regular": ("worker", "rider"), "monthly": ("monthly",)}

MARGIN = 50
TABLE_WIDTH = 495
ROW_HEIGHT = 50


def position_label(position: str) -> str:
    return POSITION_LABELS.get(position, (position or "worker").capitalize())


def summarize(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = sum(e.get("hours", 0) for e in entries)
    overtime = sum(1 for e in entries if is_overtime(e.get("hours", 0)))
    days = len(entries)
    return {
        "total_days": days,
        "regular_days": days - overtime,
        "overtime_days": overtime,
        "total_hours": round_hours(total),
        "average_hours": round_hours(total / days) if days else 0.0,
    }


def worker_stats(entries: Iterable[Dict[str, Any]], users: Dict[Any, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group a month of entries by worker.

    ``users`` maps user ``_id`` to the user document; entries of unknown
    users are skipped.
    """
    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    for entry in entries:
        if entry.get("user_id") in users:
            grouped.setdefault(entry["user_id"], []).append(entry)

    stats = []
    for user_id, items in grouped.items():
        user = users[user_id]
        summary = summarize(items)
        stats.append({
            "id": str(user_id),
            "employee_id": user.get("employee_id") or items[0].get("employee_id") or "N/A",
            "username": user.get("username", ""),
            "position": user.get("position", "worker"),
            "total_hours": summary["total_hours"],
            "total_days": summary["total_days"],
            "regular_days": summary["regular_days"],
            "overtime_days": summary["overtime_days"],
        })
    stats.sort(key=lambda s: s["username"].lower())
    return stats


def build_excel(stats: List[Dict[str, Any]], month: int, year: int, group: str = "regular") -> bytes:
    rows = [
        {
            "Employee ID": s["employee_id"],
            "Employee Name": s["username"],
            "Total Hours": s["total_hours"],
            "Total Days": s["total_days"],
            "Regular Days": s["regular_days"],
            "Overtime Days": s["overtime_days"],
            "Position": position_label(s["position"]),
        }
        for s in stats
    ]
    sheet = f"{MONTHS[month - 1]} {year}"
    if group == "monthly":
        sheet = f"Monthly Users - {sheet}"
    df = pd.DataFrame(rows)
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        # Excel caps sheet names at 31 characters
        df.to_excel(writer, index=False, sheet_name=sheet[:31])
    return buf.getvalue()


def excel_filename(month: int, year: int, group: str = "regular") -> str:
    brand = config.BRAND_NAME.replace(" ", "_")
    middle = "_Monthly_Users" if group == "monthly" else ""
    return f"{brand}{middle}_{MONTHS[month - 1]}_{year}.xlsx"


def build_pdf(user: Dict[str, Any], entries: List[Dict[str, Any]], month: int, year: int) -> bytes:
    """Render a worker's monthly time report as an A4 PDF."""
    title = f"Time Report - {MONTHS[month - 1]} {year}"
    summary = summarize(entries)
    position = position_label(user.get("position"))

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(title)
    c.setAuthor(config.BRAND_NAME)
    width, height = A4
    y = height - MARGIN

    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(width / 2, y - 24, config.BRAND_NAME)
    c.setFont("Helvetica", 18)
    c.drawCentredString(width / 2, y - 54, title)
    c.setFont("Helvetica", 14)
    c.drawCentredString(width / 2, y - 80, f"{user.get('username', '')} - {position}")
    y -= 110

    # summary box
    box_top = y
    c.setFillColor(colors.HexColor("#f6f6f6"))
    c.setStrokeColor(colors.HexColor("#e0e0e0"))
    c.rect(MARGIN, box_top - 100, TABLE_WIDTH, 100, fill=1, stroke=1)
    c.setFillColor(colors.HexColor("#333333"))
    c.setFont("Helvetica", 12)
    summary_rows = [
        ("Position:", position, "Total Days:", f"{summary['total_days']} days"),
        ("Regular Days:", f"{summary['regular_days']} days", "Overtime Days:", f"{summary['overtime_days']} days"),
        ("Total Hours:", f"{summary['total_hours']:.1f} hours", "Average Hours:", f"{summary['average_hours']:.1f} hours"),
    ]
    for i, (l1, v1, l2, v2) in enumerate(summary_rows):
        row_y = box_top - 30 - i * 25
        c.drawString(70, row_y, l1)
        c.drawString(200, row_y, v1)
        c.drawString(300, row_y, l2)
        c.drawString(430, row_y, v2)
    y = box_top - 130

    c.setFont("Helvetica-Bold", 16)
    c.drawString(MARGIN, y, "Daily Report:")
    y -= 40

    def table_header(top: float) -> float:
        c.setFillColor(colors.HexColor("#4a90e2"))
        c.setStrokeColor(colors.HexColor("#2171c7"))
        c.rect(MARGIN, top - 30, TABLE_WIDTH, 30, fill=1, stroke=1)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 12)
        for x, label in ((70, "Date"), (200, "Time"), (350, "Hours"), (430, "Status")):
            c.drawString(x, top - 20, label)
        return top - 30

    row_top = table_header(y)
    for index, entry in enumerate(entries):
        if row_top - ROW_HEIGHT < MARGIN:
            c.showPage()
            row_top = table_header(height - MARGIN)

        c.setFillColor(colors.HexColor("#f8f9fa") if index % 2 == 0 else colors.white)
        c.setStrokeColor(colors.HexColor("#e0e0e0"))
        c.rect(MARGIN, row_top - ROW_HEIGHT, TABLE_WIDTH, ROW_HEIGHT, fill=1, stroke=1)

        start = from_storage(entry["start_time"]).strftime("%I:%M %p")
        end = from_storage(entry["end_time"]).strftime("%I:%M %p")
        hours = entry.get("hours", 0)
        overtime = is_overtime(hours)

        c.setFillColor(colors.HexColor("#333333"))
        c.setFont("Helvetica", 12)
        c.drawString(70, row_top - 20, entry["date"].strftime("%b %d, %Y"))
        c.drawString(200, row_top - 20, f"{start} - {end}")
        c.drawString(350, row_top - 20, f"{hours} hours")
        c.drawString(430, row_top - 20, "Overtime" if overtime else "Regular")

        if overtime and entry.get("overtime_reason"):
            c.setFont("Helvetica", 10)
            c.setFillColor(colors.HexColor("#f0ad4e"))
            c.drawString(70, row_top - 40, f"Reason: {entry['overtime_reason']}")
            if entry["overtime_reason"] == "Company Request" and entry.get("responsible_person"):
                c.setFillColor(colors.HexColor("#5bc0de"))
                c.drawString(350, row_top - 40, f"Responsible: {entry['responsible_person']}")
        row_top -= ROW_HEIGHT

    c.save()
    return buf.getvalue()
