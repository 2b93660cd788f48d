"""
Text renderings of verification outcomes for USSD and SMS.

USSD replies start with CON (session continues) or END (session closes).
Screens are kept short and plain ASCII; most handsets cannot show emoji
in a USSD dialog.
"""

from database.models import VerificationResult

DEFAULT_SUPPORT_LINE = "0800-EMBODI"


def _date(value) -> str:
    return value.strftime("%d %b %Y") if value else "unknown"


def _product_lines(outcome) -> str:
    product = outcome.product or {}
    lines = []
    if product.get("product_name"):
        lines.append(product["product_name"])
    if product.get("company_name"):
        lines.append(f"by {product['company_name']}")
    if product.get("batch_id"):
        lines.append(f"Batch: {product['batch_id']}")
    return "\n".join(lines)


def outcome_text(outcome, support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    """Body text for an outcome, shared by USSD END screens and SMS replies."""
    if outcome.result == VerificationResult.VALID:
        return (
            f"AUTHENTIC PRODUCT\n\n{_product_lines(outcome)}\n\n"
            f"First verification. Genuine product.\n"
            f"Keep this confirmation.\nReport issues: {support_line}"
        )

    if outcome.result == VerificationResult.ALREADY_USED:
        return (
            f"PREVIOUSLY VERIFIED\n\n{_product_lines(outcome)}\n\n"
            f"First verified: {_date(outcome.first_verified_at)}\n"
            f"Total verifications: {outcome.verification_count}\n\n"
            f"If unexpected, this may be counterfeit.\nReport: {support_line}"
        )

    if outcome.result == VerificationResult.SUSPECTED_COUNTERFEIT:
        return (
            f"WARNING: SUSPECTED COUNTERFEIT\n\n{_product_lines(outcome)}\n\n"
            f"This code has been reported.\nDO NOT USE THIS PRODUCT.\n"
            f"Call {support_line}"
        )

    return (
        f"PRODUCT NOT FOUND\n\n"
        f"Not in the genuine products database.\nPossible counterfeit.\n\n"
        f"DO NOT USE THIS PRODUCT\nREPORT: {support_line}"
    )


def sms_outcome_text(outcome, support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return f"Emboditrust: {outcome_text(outcome, support_line)}"


# USSD screens

def ussd_welcome() -> str:
    return (
        "CON Welcome to Emboditrust\n"
        "Product Authentication\n\n"
        "Enter 12-character scratch code\n"
        "(under silver panel)\n"
        "or 0 for Help"
    )


def ussd_help(support_line: str = DEFAULT_SUPPORT_LINE, sms_keyword: str = "SCRATCH") -> str:
    return (
        "END Emboditrust Help\n\n"
        "The scratch code is 12 characters\n"
        "under the silver panel.\n"
        "Format: ABC-DEF-GHJ-KMN\n\n"
        f"Or SMS: {sms_keyword} <code>\n"
        f"Support: {support_line}"
    )


def ussd_bad_length(length: int) -> str:
    return (
        "CON Invalid code length.\n"
        f"Must be 12 characters (got {length}).\n\n"
        "Enter scratch code again:"
    )


def ussd_bad_characters() -> str:
    return (
        "CON Invalid characters.\n"
        "Use letters and digits only\n"
        "(no 0, 1, I or O).\n\n"
        "Enter scratch code again:"
    )


def ussd_outcome(outcome, support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return f"END {outcome_text(outcome, support_line)}"


def ussd_replay(result: str, timestamp, support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return (
        "END Recent verification found:\n\n"
        f"Result: {result.replace('_', ' ').upper()}\n"
        f"Time: {timestamp.strftime('%H:%M') if timestamp else 'recently'}\n\n"
        f"If suspicious, call {support_line}"
    )


def ussd_system_error(support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return f"END System error.\n\nPlease try again later.\nFor help: {support_line}"


# SMS replies

def sms_help(support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return (
        "EMBODITRUST PRODUCT VERIFICATION\n\n"
        "To verify send:\nSCRATCH <12-character code>\n"
        "Example: SCRATCH ABC-DEF-GHJ-KMN\n\n"
        f"Report fakes: {support_line}"
    )


def sms_usage() -> str:
    return (
        "Invalid format.\n\n"
        "Send: SCRATCH <12-character code>\n"
        "Send HELP for help."
    )


def sms_bad_length(code: str) -> str:
    return (
        "Invalid code length.\nMust be 12 characters.\n\n"
        f"Your code: {code} ({len(code)} chars)"
    )


def sms_replay(result: str, timestamp, support_line: str = DEFAULT_SUPPORT_LINE) -> str:
    return (
        "Recently verified.\n\n"
        f"Result: {result.replace('_', ' ').upper()}\n"
        f"Time: {timestamp.strftime('%H:%M') if timestamp else 'recently'}\n\n"
        f"If suspicious, call {support_line}"
    )


def sms_system_error() -> str:
    return "Emboditrust: service temporarily unavailable. Please try again in a few minutes."
