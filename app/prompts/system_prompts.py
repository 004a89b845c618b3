# Centralized prompts for the work-order pipeline.
# - Prompts provided:
#   1) COMPANY_CLASSIFICATION_PROMPT (Stage 1, company detection)
#   2) TEXT_EXTRACTION_PROMPT (Stage 1, plain text for the rule pass)
#   3) WORK_ORDER_GENERATION_PROMPT (Stage 2, per-company work order)
#
# NOTE: Bump the prompt version in the registry whenever a Stage 2 prompt
# changes; the version is persisted with every work order.

# =============================================================================
# COMPANY CLASSIFICATION PROMPT (Stage 1)
# =============================================================================
COMPANY_CLASSIFICATION_PROMPT = r"""
You are a document intake specialist for a Japanese building-materials
distributor. The attached file is a scanned purchase order (発注書 / 手配書).

TASK: Decide which client company issued the document.
Choose EXACTLY ONE company_id from the catalog below, or null.

===============================================================================
COMPANY CATALOG
===============================================================================
{company_catalog}

===============================================================================
DECISION RULES (in priority order)
===============================================================================
1. If a CONFIRMED identifier appears verbatim anywhere in the document, answer
   with that company and a confidence of 0.95 or higher, regardless of any
   other company names that also appear.
2. If several keywords of the same company appear, prefer that company.
3. Otherwise decide from the remaining keywords, letterhead, addresses and
   logos.
4. If no company can be identified, answer null with a confidence below 0.3.
5. Do not guess. Lower the confidence when unsure.

Only analyse who issued the document. Do NOT transcribe the order itself.

===============================================================================
OUTPUT (JSON ONLY, no commentary, no code fences)
===============================================================================
{{
  "company_id": "<company_id from the catalog, or null>",
  "confidence": 0.0-1.0,
  "reasoning": "short explanation of the evidence",
  "found_keywords": ["keywords actually seen in the document"]
}}
"""

# =============================================================================
# TEXT EXTRACTION PROMPT (Stage 1 rule pass)
# =============================================================================
TEXT_EXTRACTION_PROMPT = r"""
Extract all text from the attached document.

- Output plain text only, in reading order.
- Keep company names, addresses and stamps exactly as printed.
- Do not summarise, translate or correct anything.
- Do not add commentary or formatting.
"""

# =============================================================================
# WORK ORDER GENERATION PROMPT (Stage 2)
# =============================================================================
WORK_ORDER_GENERATION_PROMPT = r"""
You are preparing an internal work order (手配書) from a purchase order issued
by {company_name} (company id: {company_id}).

Source file: {file_name}

Read the attached document and produce the work order text with these
sections, in this order:

【発注元】 issuing company and branch
【現場名】 site name and address
【納期】 requested delivery date and time window
【品目】 one line per item: product name / specification / quantity / unit
【備考】 delivery notes, contacts and any special instructions

Rules:
- Copy product names, specifications and quantities exactly as printed.
- Write "不明" for any field that cannot be read.
- Do not invent items or quantities.
{company_instructions}
"""
