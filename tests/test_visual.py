"""Tests for markup-based visual similarity analysis."""

import pytest

from threatlens.analyzer.models import Target
from threatlens.analyzer.visual import VisualSimilarityAnalyzer, extract_ui_elements

PAYPAL_CLONE = """
<html>
  <title>PayPal Login</title>
  <form class="login" action="/signin">
    <input type="email" name="user">
    <input type="password" name="pass">
  </form>
  <div style="background:#003087">PayPal secure payment</div>
</html>
"""

MALICIOUS_FORM = """
<form action="javascript:steal()"><input type="password"></form>
<script>eval(atob("ZG9jdW1lbnQ="))</script>
"""


def scan_markup(markup: str):
    return VisualSimilarityAnalyzer().analyze(Target.from_url("https://example.com", content=markup))


def test_extract_ui_elements():
    elements = extract_ui_elements(PAYPAL_CLONE)
    assert "login-form" in elements
    assert "password-input" in elements
    assert "email-input" in elements
    assert "security-badge" in elements


@pytest.mark.asyncio
async def test_requires_content():
    result = await VisualSimilarityAnalyzer().analyze(Target.from_url("https://example.com"))
    assert not result.available
    assert result.reason == "no content"


@pytest.mark.asyncio
async def test_brand_clone_markup():
    result = await scan_markup(PAYPAL_CLONE)
    # 2 mentions, 1 colour, 1 key element, login form
    assert result.signals["best_brand_similarity"] == 90
    assert result.signals["brand_similarities"][0]["brand"] == "PayPal"
    assert "Visual resemblance to PayPal" in [f.label for f in result.factors]
    assert result.signals["layout_suspicion"] == 30
    assert result.score == 90
    assert "login-form" in result.signals["ui_elements"]


@pytest.mark.asyncio
async def test_malicious_layout():
    result = await scan_markup(MALICIOUS_FORM)
    labels = [f.label for f in result.factors]
    assert result.signals["obfuscated_script"] is True
    assert result.signals["unsafe_form_action"] is True
    assert "Suspicious page layout" in labels
    assert "Obfuscated JavaScript" in labels
    assert "Form submits to script or data URI" in labels
    assert result.score == 100


@pytest.mark.asyncio
async def test_logo_mentions():
    result = await scan_markup('<img src="/img/netflix-logo.png" alt="Netflix logo">')
    assert {"brand": "Netflix", "confidence": 0.7} in result.signals["logo_detections"]


@pytest.mark.asyncio
async def test_plain_page_is_clean():
    result = await scan_markup("<html><body><p>Opening hours: 9 to 5.</p></body></html>")
    assert result.score == 0
    assert result.factors == ()


@pytest.mark.asyncio
async def test_plain_text_without_markup_is_unavailable():
    result = await scan_markup("URGENT: verify your PayPal account by wire transfer.")
    assert not result.available
    assert result.reason == "no markup"
