"""Helpers for rewriting chart formula text.

Chart element formulas reference stat fields as bracketed tokens, e.g.
"[stats.female] / [stats.totalFans] * 100". Older charts use bare tokens
("[female]"), dotted paths without brackets ("stats.female") or a whole
formula wrapped in brackets for raw text/image fields ("[reportText1]").
"""

import re

# Old token -> absolute database path
ABSOLUTE_PATH_MAP = {
    # Images
    "[remoteImages]": "[stats.remoteImages]",
    "[hostessImages]": "[stats.hostessImages]",
    "[selfies]": "[stats.selfies]",
    "[approvedImages]": "[stats.approvedImages]",
    "[rejectedImages]": "[stats.rejectedImages]",
    # Location
    "[remoteFans]": "[stats.remoteFans]",
    "[stadium]": "[stats.stadium]",
    "[totalFans]": "[stats.totalFans]",
    "[indoor]": "[stats.remoteFans]",  # legacy
    "[outdoor]": "[stats.remoteFans]",  # legacy
    # Demographics
    "[female]": "[stats.female]",
    "[male]": "[stats.male]",
    "[genAlpha]": "[stats.genAlpha]",
    "[genYZ]": "[stats.genYZ]",
    "[genX]": "[stats.genX]",
    "[boomer]": "[stats.boomer]",
    # Merchandise
    "[merched]": "[stats.merched]",
    "[jersey]": "[stats.jersey]",
    "[scarf]": "[stats.scarf]",
    "[flags]": "[stats.flags]",
    "[baseballCap]": "[stats.baseballCap]",
    "[other]": "[stats.other]",
    # Visits
    "[visitFacebook]": "[stats.visitFacebook]",
    "[visitInstagram]": "[stats.visitInstagram]",
    "[visitYoutube]": "[stats.visitYoutube]",
    "[visitTiktok]": "[stats.visitTiktok]",
    "[visitX]": "[stats.visitX]",
    "[visitTrustpilot]": "[stats.visitTrustpilot]",
    "[visitQrCode]": "[stats.visitQrCode]",
    "[visitShortUrl]": "[stats.visitShortUrl]",
    "[visitWeb]": "[stats.visitWeb]",
    "[socialVisit]": "[stats.socialVisit]",
    # Event
    "[eventAttendees]": "[stats.eventAttendees]",
    "[eventResultHome]": "[stats.eventResultHome]",
    "[eventResultVisitor]": "[stats.eventResultVisitor]",
    "[eventValuePropositionVisited]": "[stats.eventValuePropositionVisited]",
    "[eventValuePropositionPurchases]": "[stats.eventValuePropositionPurchases]",
    # Computed
    "[allImages]": "[stats.allImages]",
    "[totalUnder40]": "[stats.totalUnder40]",
    "[totalOver40]": "[stats.totalOver40]",
}

# Tokens with these prefixes are not stat fields and are never rewritten
SPECIAL_PREFIXES = ("PARAM:", "MANUAL:", "MEDIA:", "TEXT:")

_TOKEN_RE = re.compile(r"\[([^\[\]]+)\]")
_WRAPPED_RE = re.compile(r"^\s*\[([A-Za-z0-9_]+)\]\s*$")
_BARE_BRACKET_RE = re.compile(r"\[(?!stats\.|PARAM:|MANUAL:|MEDIA:|TEXT:)([A-Za-z0-9_]+)\]")
_UNBRACKETED_STATS_RE = re.compile(r"(?<!\[)\bstats\.([A-Za-z0-9_]+)\b(?!\])")
_ABSOLUTE_RE = re.compile(
    "|".join(re.escape(token) for token in sorted(ABSOLUTE_PATH_MAP, key=len, reverse=True))
)


def migrate_to_absolute(formula):
    """Rewrite mapped bare tokens to their [stats.*] form.

    Returns (new_formula, changed). Tokens missing from ABSOLUTE_PATH_MAP are
    left as they are.
    """
    if not formula or not isinstance(formula, str):
        return formula, False
    new_formula = _ABSOLUTE_RE.sub(lambda m: ABSOLUTE_PATH_MAP[m.group(0)], formula)
    return new_formula, new_formula != formula


def strip_wrapping_brackets(formula):
    """"[reportText1]" -> "reportText1"; anything else is returned as is.

    Only plain field names are unwrapped. "[stats.female]" is already in
    normalized form and stays bracketed.
    """
    if not formula or not isinstance(formula, str):
        return formula
    match = _WRAPPED_RE.match(formula)
    if not match:
        return formula
    return match.group(1)


def normalize_formula(formula):
    """Bring every stat reference to the [stats.field] form."""
    if not formula or not isinstance(formula, str):
        return formula
    normalized = _BARE_BRACKET_RE.sub(lambda m: f"[stats.{m.group(1)}]", formula)
    normalized = _UNBRACKETED_STATS_RE.sub(lambda m: f"[stats.{m.group(1)}]", normalized)
    return normalized


def extract_fields(formula):
    """Return the stat field names a formula references, in order of appearance."""
    if not formula or not isinstance(formula, str):
        return []
    fields = []
    for token in _TOKEN_RE.findall(formula):
        if token.startswith(SPECIAL_PREFIXES):
            continue
        if token.startswith("stats."):
            token = token[len("stats."):]
        if token not in fields:
            fields.append(token)
    return fields


def iter_chart_formulas(chart):
    """Yield (label, formula) for the top-level formula and each element formula."""
    if chart.get("formula"):
        yield "(chart formula)", chart["formula"]
    for idx, element in enumerate(chart.get("elements") or []):
        if isinstance(element, dict) and element.get("formula"):
            yield element.get("label") or f"element {idx + 1}", element["formula"]


def rewrite_chart_formulas(chart, rewrite):
    """Apply rewrite(formula) -> formula to every formula of a chart.

    Returns (updates, changes): updates is a $set payload (empty when nothing
    changed) and changes a list of (label, old, new) tuples.
    """
    updates = {}
    changes = []

    formula = chart.get("formula")
    if formula:
        new_formula = rewrite(formula)
        if new_formula != formula:
            updates["formula"] = new_formula
            changes.append(("(chart formula)", formula, new_formula))

    elements = chart.get("elements") or []
    new_elements = []
    elements_changed = False
    for idx, element in enumerate(elements):
        if isinstance(element, dict) and element.get("formula"):
            new_formula = rewrite(element["formula"])
            if new_formula != element["formula"]:
                label = element.get("label") or f"element {idx + 1}"
                changes.append((label, element["formula"], new_formula))
                element = dict(element, formula=new_formula)
                elements_changed = True
        new_elements.append(element)
    if elements_changed:
        updates["elements"] = new_elements

    return updates, changes
