# =============================================
# File: concierge/services/prompt_defaults.py
# Purpose: Built-in prompt templates; the id set here is the universe of valid prompt ids
# =============================================
from __future__ import annotations
from typing import Dict

from concierge.services.schemas import PromptTemplate

INTENT_ANALYZE = """Analyze the following customer query and extract their intent, taking the conversation history into account.

Conversation history:
{{conversation}}

Available product categories:
{{category_list}}

Customer query: "{{query}}"

Rules:
- If the customer is only greeting you or making small talk with no product need, set "isGeneralChat" to true.
- If the customer wants an item that does not reasonably belong to ANY category above, do NOT force a category.
  Set "category" to null and fill "productRequestData" instead.
- Otherwise treat it as a search for existing products and pick category/subcategory ids ONLY from the list.

Respond with a JSON object (and nothing else) in exactly this format:
{
  "category": "category ID from the list, or null",
  "subcategory": "subcategory ID from the list, or null",
  "requirements": ["specific requirements from the query"],
  "budgetMin": null or number,
  "budgetMax": null or number (e.g. "under 5000" -> 5000),
  "preferences": ["stated preferences such as 'premium', 'waterproof', 'matte finish'"],
  "useCase": "short description of what the product is for",
  "confidence": 0.0 to 1.0,
  "isGeneralChat": true or false,
  "productRequestData": null or {
    "name": "product name",
    "category": "probable category",
    "maxBudget": number or null,
    "specifications": ["specs"]
  }
}"""

RANK_SUMMARIZE = """{{system_prompt}}

Reply in the SAME language as the customer query. Speak as {{persona}}.

Customer query: "{{query}}"

Intent analysis:
- Use case: {{use_case}}
- Requirements: {{requirements}}
- Preferences: {{preferences}}
- Budget: {{budget}}

Available products:
{{product_list}}

Respond with a JSON object (and nothing else) in exactly this format:
{
  "rankings": [
    {
      "productId": "the product ID",
      "matchScore": 0-100,
      "highlights": ["short features that match the customer's needs"],
      "whyRecommended": "a persuasive 1-2 sentence pitch"
    }
  ],
  "summary": "a warm, helpful overall summary for the customer, in their language"
}

Rules:
1. Recommend ONLY products from "Available products". Never invent products.
2. Include only products that are genuinely relevant; you do not have to rank all of them.
3. Order rankings from best to worst match."""

MISSING_PRODUCT = """{{system_prompt}}

{{history}}Customer query: "{{query}}"

Context: the customer is interested in "{{product_name}}", but we do NOT stock it right now.
As {{persona}}, you can log a product request so the store can source it.

Decision:
1. If the budget or specific details are known, or the customer explicitly asked to order it, log the request.
2. Otherwise ask for their budget and key details first.

Respond with a JSON object (and nothing else):
{
  "action": "request" or "ask_details",
  "response": "text for the customer. If requesting: confirm what you noted. If asking: say we don't have it and ask for budget/preferences.",
  "requestData": { "name": "...", "category": "...", "maxBudget": number (0 if unknown), "specifications": ["..."] }
}
"requestData" is required when action is "request"."""

GENERAL_CHAT = """{{system_prompt}}

You are {{persona}}. The customer is chatting, not searching for a specific product.

Conversation history:
{{conversation}}

Customer's latest message: "{{message}}"

Reply naturally and briefly in the customer's language. If they hint at a product need, suggest a category or
ask a clarifying question; do not invent specific products.

Respond with a JSON object (and nothing else):
{
  "reply": "your reply",
  "suggestedActions": ["optional short follow-up suggestions"]
}"""


def _tpl(id: str, name: str, description: str, template: str) -> PromptTemplate:
    return PromptTemplate(id=id, name=name, description=description, template=template, is_active=True)


DEFAULT_PROMPTS: Dict[str, PromptTemplate] = {
    p.id: p
    for p in (
        _tpl("intent-analyze", "Intent Analyzer", "Maps a customer query to categories, budget and flags.", INTENT_ANALYZE),
        _tpl("rank-summarize", "Rank & Summarize", "Ranks candidate products and writes the reply summary.", RANK_SUMMARIZE),
        _tpl("missing-product", "Handle Missing Product", "Logs a wanted item or asks for details.", MISSING_PRODUCT),
        _tpl("general-chat", "General Chat Assistant", "Greetings and small talk.", GENERAL_CHAT),
    )
}
