#!/usr/bin/env python3
"""
Generate synthetic form documents with ground truth for field detection.

Each form is drawn directly on a reportlab canvas so every field's position is
known exactly. Next to each ``<name>.pdf`` a ``<name>.groundtruth.json`` file
is written with page-normalized, top-left-origin rectangles.
"""

import json
from pathlib import Path

import typer
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

app = typer.Typer(help="Generate synthetic form PDFs with ground truth.")

PAGE_WIDTH, PAGE_HEIGHT = letter


class FormBuilder:
    """Draws form fields on a canvas and records their ground truth."""

    def __init__(self, output_path: Path, document_id: str):
        self.output_path = output_path
        self.document_id = document_id
        self.canvas = canvas.Canvas(str(output_path), pagesize=letter)
        self.canvas.setLineWidth(1)
        self.pages: list[dict] = []
        self.fields: list[dict] = []

    def _record(self, field_type: str, x: float, top: float, width: float, height: float, label: str):
        """Record a field; ``top`` is measured from the top of the page."""
        self.fields.append({
            "id": f"p{len(self.pages)}-{len(self.fields)}",
            "type": field_type,
            "rect": {
                "x": x / PAGE_WIDTH,
                "y": top / PAGE_HEIGHT,
                "width": width / PAGE_WIDTH,
                "height": height / PAGE_HEIGHT,
            },
            "attributes": {"label": label},
        })

    def title(self, text: str):
        self.canvas.setFont("Helvetica-Bold", 16)
        self.canvas.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - inch, text)
        self.canvas.setFont("Helvetica", 10)

    def paragraph(self, y: float, text: str):
        self.canvas.drawString(inch, y, text)

    def underline_field(self, label: str, y: float, x: float = 2.2 * inch, width: float = 3 * inch):
        """Label on the left, writing line on the right; ``y`` is the baseline."""
        self.canvas.drawString(inch, y, f"{label}:")
        self.canvas.line(x, y - 2, x + width, y - 2)
        field_height = 10
        self._record("text", x, PAGE_HEIGHT - (y - 2) - field_height, width, field_height, label)

    def boxed_field(self, label: str, y: float, x: float = 2.2 * inch, width: float = 3 * inch, height: float = 16):
        self.canvas.drawString(inch, y + 4, f"{label}:")
        self.canvas.rect(x, y, width, height)
        self._record("text", x, PAGE_HEIGHT - y - height, width, height, label)

    def checkbox(self, label: str, y: float, x: float = inch, size: float = 10):
        self.canvas.rect(x, y, size, size)
        self.canvas.drawString(x + size + 6, y + 1, label)
        self._record("checkbox", x, PAGE_HEIGHT - y - size, size, size, label)

    def radio(self, label: str, y: float, x: float = inch, radius: float = 5):
        self.canvas.circle(x + radius, y + radius, radius)
        self.canvas.drawString(x + 2 * radius + 6, y + 1, label)
        self._record("radio", x, PAGE_HEIGHT - y - 2 * radius, 2 * radius, 2 * radius, label)

    def signature_box(self, label: str, y: float, x: float = inch, width: float = 3 * inch, height: float = 0.5 * inch):
        self.canvas.drawString(x, y + height + 4, label)
        self.canvas.rect(x, y, width, height)
        self._record("signature", x, PAGE_HEIGHT - y - height, width, height, label)

    def next_page(self):
        self.pages.append({
            "pageIndex": len(self.pages),
            "width": PAGE_WIDTH,
            "height": PAGE_HEIGHT,
            "fields": self.fields,
        })
        self.fields = []
        self.canvas.showPage()
        self.canvas.setLineWidth(1)

    def save(self):
        if self.fields or not self.pages:
            self.next_page()
        self.canvas.save()

        annotation = {
            "documentId": self.document_id,
            "sourcePath": self.output_path.name,
            "pages": self.pages,
            "metadata": {"generator": "generate_sample_docs"},
        }
        groundtruth_path = self.output_path.with_name(f"{self.document_id}.groundtruth.json")
        groundtruth_path.write_text(json.dumps(annotation, indent=2), encoding="utf-8")


def create_registration_form(output_dir: Path):
    """Create a registration form with underlined and boxed text fields."""
    form = FormBuilder(output_dir / "01_registration.pdf", "01_registration")
    form.title("REGISTRATION FORM")
    form.paragraph(PAGE_HEIGHT - 1.5 * inch, "Please complete all fields in block capitals.")

    y = PAGE_HEIGHT - 2.2 * inch
    for label in ["Full Name", "Address", "City", "Phone"]:
        form.underline_field(label, y)
        y -= 0.5 * inch

    for label in ["Email", "Reference"]:
        form.boxed_field(label, y)
        y -= 0.6 * inch

    form.save()


def create_consent_form(output_dir: Path):
    """Create a consent form with checkboxes and a signature box."""
    form = FormBuilder(output_dir / "02_consent.pdf", "02_consent")
    form.title("CONSENT FORM")

    y = PAGE_HEIGHT - 2 * inch
    form.underline_field("Participant", y)
    y -= 0.6 * inch

    for label in [
        "I consent to participate in this study",
        "I understand the risks involved",
        "I agree to the collection of my data",
        "I am at least 18 years old",
    ]:
        form.checkbox(label, y)
        y -= 0.4 * inch

    form.signature_box("Participant Signature", y - 0.8 * inch)
    form.save()


def create_survey(output_dir: Path):
    """Create a two-page survey with radio buttons and checkboxes."""
    form = FormBuilder(output_dir / "03_survey.pdf", "03_survey")
    form.title("CUSTOMER SURVEY")

    y = PAGE_HEIGHT - 2 * inch
    form.paragraph(y, "How satisfied are you with our service?")
    y -= 0.4 * inch
    for label in ["Very satisfied", "Satisfied", "Neutral", "Dissatisfied"]:
        form.radio(label, y)
        y -= 0.35 * inch

    form.next_page()
    form.title("CUSTOMER SURVEY (continued)")

    y = PAGE_HEIGHT - 2 * inch
    form.paragraph(y, "Which products do you use?")
    y -= 0.4 * inch
    for label in ["Checking", "Savings", "Credit card"]:
        form.checkbox(label, y)
        y -= 0.4 * inch

    form.underline_field("Comments", y - 0.2 * inch, width=4 * inch)
    form.signature_box("Signature", y - 1.6 * inch)
    form.save()


def create_unlabeled_scan(output_dir: Path):
    """Create a document with no ground truth file."""
    c = canvas.Canvas(str(output_dir / "04_unlabeled.pdf"), pagesize=letter)
    c.drawString(inch, PAGE_HEIGHT - inch, "This document has no annotations.")
    c.save()


@app.command()
def main(
    output_dir: Path = typer.Option(Path("test"), "--out-dir", "-o", help="Where to write the dataset"),
):
    """Generate all sample documents."""
    output_dir.mkdir(parents=True, exist_ok=True)

    generators = [
        ("Registration form", create_registration_form),
        ("Consent form", create_consent_form),
        ("Survey", create_survey),
        ("Unlabeled document", create_unlabeled_scan),
    ]

    for name, generator in generators:
        typer.echo(f"Creating: {name}...")
        generator(output_dir)

    typer.echo(f"\nGenerated {len(generators)} sample documents in {output_dir}")


if __name__ == "__main__":
    app()
