"""Extraction prompt construction.

The JSON template below mirrors InvoiceRecord field for field; the model
is asked to fill it in and return one JSON object and nothing else.
"""

import json

INVOICE_TEMPLATE = """{{
  "fileId": {file_id},
  "fileName": {file_name},
  "vendor": {{ "name": "", "address": "", "taxId": "" }},
  "invoice": {{
    "number": "", "date": "", "currency": "",
    "subtotal": 0, "taxPercent": 0, "total": 0,
    "poNumber": "", "poDate": "",
    "lineItems": [
      {{ "description": "", "unitPrice": 0, "quantity": 0, "total": 0 }}
    ]
  }}
}}"""


def build_extraction_prompt(file_id: str, file_name: str, text: str) -> str:
    """Build the instruction prompt for one document.

    Pure and deterministic: identical inputs always give the identical prompt.

    Args:
        file_id: Document reference, echoed back in the template
        file_name: Original file name, echoed back in the template
        text: Extracted PDF text (may be empty)

    Returns:
        Prompt string
    """
    template = INVOICE_TEMPLATE.format(
        file_id=json.dumps(file_id, ensure_ascii=False),
        file_name=json.dumps(file_name, ensure_ascii=False),
    )
    return f"""You must return a single JSON object and NOTHING ELSE (no commentary, no code fences).
Return valid JSON matching this structure (use empty string or 0 if missing; lineItems may be an empty array):

{template}

Rules:
- "date" and "poDate" use YYYY-MM-DD when the document allows it.
- "taxPercent" is a percentage (18 for 18%), not an amount.
- "quantity" is a whole number; amounts are plain numbers without currency symbols.
- Keep line items in the order they appear in the document.

PDF TEXT:
{text}
"""
