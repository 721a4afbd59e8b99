import json
from typing import Any, Dict, List

SAMPLE_ROWS = 5

GREETING_REPLY = (
    "Hello! I'm your data analysis assistant. You can ask me questions about your data, "
    "and I'll help you analyze it. For example, try asking about specific columns, "
    "averages, trends, or distributions in your data."
)

PARSE_FALLBACK_REPLY = (
    "I apologize, but I couldn't analyze the data properly. "
    "Could you please rephrase your question?"
)

SERVICE_FALLBACK_REPLY = (
    "I apologize, but I encountered an error while processing your query: {reason}"
)

PROMPT_TEMPLATE = """You are a helpful data analysis assistant specialized in SQL query generation and natural language explanations.

SCHEMA:
{schema}

SAMPLE DATA (first {n_rows} rows):
{sample}

AVAILABLE COLUMNS: {available}

COLUMN PROFILE:
{profile}

USER QUESTION:
"{question}"

OUTPUT FORMAT (STRICT):
Respond with ONE JSON object only, using this structure:
{{
  "answer": "A clear, conversational explanation of the analysis",
  "sqlQuery": "The SQL query that answers the question",
  "visualization": "pie" | "bar" | "line" | null,
  "chartDataColumn": "the column to chart, if a chart helps"
}}

INSTRUCTIONS:
- Use exact column names from the schema above
- Ground counts and ranges in the column profile
- Set visualization only when a chart would help answer the question
- Do NOT include code fences or any text outside the JSON object
"""


def build_prompt(
    schema: Dict[str, Any],
    sample_rows: List[Dict[str, Any]],
    profile: List[Dict[str, Any]],
    question: str,
) -> str:
    available = ", ".join(f"{c['name']} ({c['type']})" for c in schema.get("columns", []))
    return PROMPT_TEMPLATE.format(
        schema=json.dumps(schema, indent=2, default=str),
        n_rows=len(sample_rows),
        sample=json.dumps(sample_rows, indent=2, default=str),
        available=available,
        profile=json.dumps(profile, ensure_ascii=False, indent=2, default=str)[:6000],
        question=question,
    )
