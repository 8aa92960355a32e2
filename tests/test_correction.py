"""
Unit Tests for the Correction Pass
"""

import pytest

from veritas_server.llm.base_provider import AllProvidersFailedError
from veritas_server.schemas.citation import CitationValidation
from veritas_server.schemas.validation import FlaggedContent
from veritas_server.services.citation_extractor import CitationExtractor
from veritas_server.services.correction import (
    REFUSAL_MESSAGE,
    CitationCorrector,
    CorrectionPass,
)
from veritas_server.services.generator import AugmentedGenerator

from tests.conftest import ScriptedLLM


def flagged(citation_id: str, text: str, source_id=None) -> CitationValidation:
    return CitationValidation(
        citation_id=citation_id,
        original_text=text,
        source_id=source_id,
        status="flagged",
    )


def verified(citation_id: str, text: str, source_id: str) -> CitationValidation:
    return CitationValidation(
        citation_id=citation_id,
        original_text=text,
        source_id=source_id,
        integrity_valid=True,
        textual_match=True,
        semantic_similarity=0.9,
        authority_score=80,
        status="verified",
    )


def inaccuracy(citation_id: str, span: str) -> FlaggedContent:
    return FlaggedContent(
        content_id=citation_id,
        flag_type="inaccuracy",
        severity="high",
        description=f"Citation validation failed for: {span}",
        span_text=span,
        requires_removal=True,
    )


CRITICAL_CONFIDENCE = FlaggedContent(
    content_id="confidence_overall",
    flag_type="low_confidence",
    severity="critical",
    description="Overall confidence score is 10%, below acceptable threshold",
    requires_removal=True,
)


def correction_pass(settings, responses=None):
    llm = ScriptedLLM(responses)
    return CorrectionPass(AugmentedGenerator(llm, settings)), llm


class TestCorrectionPass:
    """Tests for CorrectionPass."""

    @pytest.mark.asyncio
    async def test_substitutes_corrected_citation(self, settings, federal_case, passage):
        answer = (
            "Landowners must warn invitees of hidden dangers, 999 F.3d 1 (9th Cir. 2021). "
            "They must also keep the premises reasonably safe [Source 1]."
        )
        bad = flagged("citation_1", "999 F.3d 1 (9th Cir. 2021)", "case-1")
        fix = "101 F.3d 201 (9th Cir. 2021)"
        cp, llm = correction_pass(settings)

        result = await cp.correct(
            answer,
            [inaccuracy("citation_1", bad.original_text)],
            [bad, verified("citation_2", "[Source 1]", "case-1")],
            [passage(federal_case(1))],
            corrections={"citation_1": fix},
        )

        assert fix in result.text
        assert "999 F.3d 1" not in result.text
        assert result.citation_validations[0].status == "corrected"
        assert result.citation_validations[1].status == "verified"
        assert result.corrected
        assert not result.regenerated
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_removes_sentence_with_bad_citation(self, settings, federal_case, passage):
        answer = (
            "A landowner owes invitees a duty of reasonable care [Source 1]. "
            "The duty includes warning of hidden dangers [Source 1]. "
            "Trespassers are owed nothing [Source 4]."
        )
        cp, _ = correction_pass(settings)

        result = await cp.correct(
            answer,
            [inaccuracy("citation_3", "[Source 4]")],
            [
                verified("citation_1", "[Source 1]", "case-1"),
                verified("citation_2", "[Source 1]", "case-1"),
                flagged("citation_3", "[Source 4]"),
            ],
            [passage(federal_case(1))],
        )

        assert "Trespassers" not in result.text
        assert result.text.endswith("hidden dangers [Source 1].")
        assert result.citation_validations[2].status == "removed"
        assert result.removed_spans == ["[Source 4]"]
        assert not result.regenerated
        assert not result.refused

    @pytest.mark.asyncio
    async def test_regenerates_when_little_survives(self, settings, federal_case, passage):
        cp, llm = correction_pass(
            settings, ["Invitees are owed reasonable care [Source 2]."]
        )
        passages = [passage(federal_case(1), 1), passage(federal_case(2), 2)]

        result = await cp.correct(
            "Invitees are owed nothing at all [Source 1].",
            [CRITICAL_CONFIDENCE, inaccuracy("citation_1", "[Source 1]")],
            [flagged("citation_1", "[Source 1]", "case-1")],
            passages,
            query="What duty is owed to invitees?",
        )

        assert result.regenerated
        assert result.text == "Invitees are owed reasonable care [Source 2]."
        assert result.model == "test-model"

        prompt = llm.calls[0][1]["content"]
        assert "[Source 2] Premises Case 2" in prompt
        assert "[Source 1]" not in prompt

    @pytest.mark.asyncio
    async def test_refuses_when_no_clean_sources(self, settings, federal_case, passage):
        cp, llm = correction_pass(settings)

        result = await cp.correct(
            "Invitees are owed nothing at all [Source 1].",
            [inaccuracy("citation_1", "[Source 1]")],
            [flagged("citation_1", "[Source 1]", "case-1")],
            [passage(federal_case(1))],
        )

        assert result.refused
        assert result.text == REFUSAL_MESSAGE
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_refuses_when_regeneration_fails(self, settings, federal_case, passage):
        cp, _ = correction_pass(settings, [AllProvidersFailedError("all down")])

        result = await cp.correct(
            "Short answer [Source 1].",
            [CRITICAL_CONFIDENCE],
            [verified("citation_1", "[Source 1]", "case-1")],
            [passage(federal_case(1))],
        )

        assert result.refused
        assert result.text == REFUSAL_MESSAGE

    @pytest.mark.asyncio
    async def test_non_removal_flags_leave_text(self, settings, federal_case, passage):
        answer = "Courts have consistently held that invitees are owed care."
        hallucination = FlaggedContent(
            content_id="hallucination_0",
            flag_type="hallucination",
            severity="high",
            description="Potential hallucination detected",
            span_text=answer,
        )
        cp, _ = correction_pass(settings)

        result = await cp.correct(answer, [hallucination], [], [passage(federal_case(1))])
        assert result.text == answer
        assert not result.corrected


class TestCitationCorrector:
    """Tests for CitationCorrector."""

    @pytest.mark.asyncio
    async def test_parses_fenced_reply(self, federal_case, passage):
        llm = ScriptedLLM(['```json\n{"corrected_citation": "101 F.3d 201 (9th Cir. 2021)"}\n```'])
        (citation,) = CitationExtractor().extract("See 999 F.3d 1 (9th Cir. 2021).")

        suggestion = await CitationCorrector(llm).suggest(
            citation, flagged(citation.id, citation.text, "case-1"), passage(federal_case(1))
        )
        assert suggestion == "101 F.3d 201 (9th Cir. 2021)"

    @pytest.mark.asyncio
    async def test_markers_are_not_corrected(self, federal_case, passage):
        llm = ScriptedLLM()
        (citation,) = CitationExtractor().extract("Claim [Source 1].")

        suggestion = await CitationCorrector(llm).suggest(
            citation, flagged(citation.id, citation.text, "case-1"), passage(federal_case(1))
        )
        assert suggestion is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unparseable_or_failed_reply(self, federal_case, passage):
        (citation,) = CitationExtractor().extract("See 999 F.3d 1 (9th Cir. 2021).")
        v = flagged(citation.id, citation.text, "case-1")

        garbage = CitationCorrector(ScriptedLLM(["no idea"]))
        assert await garbage.suggest(citation, v, passage(federal_case(1))) is None

        failing = CitationCorrector(ScriptedLLM([AllProvidersFailedError("down")]))
        assert await failing.suggest(citation, v, passage(federal_case(1))) is None

    @pytest.mark.asyncio
    async def test_unresolved_citation(self):
        (citation,) = CitationExtractor().extract("See 999 F.3d 1 (9th Cir. 2021).")
        suggestion = await CitationCorrector(ScriptedLLM()).suggest(
            citation, flagged(citation.id, citation.text), None
        )
        assert suggestion is None
