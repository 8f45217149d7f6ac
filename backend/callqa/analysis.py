"""Evaluation of a transcript against a company's weighted criteria.

An LLM backend does the real evaluation when one is configured. The keyword
evaluator is the fallback: it is deterministic, so the same transcript and
criteria always produce the same verdicts.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import asyncio
import json
import logging
import re
import unicodedata

from openai import AsyncOpenAI

from .exceptions import BackendError
from .schemas import AnalysisResult, CriterionVerdict, Highlight, TranscriptSegment
from .transcription import format_timestamp

logger = logging.getLogger(__name__)

MIN_KEYWORD_LENGTH = 4

STOP_WORDS = {
    "para", "pela", "pelo", "como", "com", "sobre", "entre", "quando", "onde",
    "esta", "este", "isso", "essa", "esse", "mais", "muito", "cliente", "agente",
    "chamada", "the", "with", "from", "that", "this", "call",
}

# Phrases that count as evidence for a criterion keyword in the keyword evaluator
KEYWORD_CUES = {
    "saudacao": ["bom dia", "boa tarde", "boa noite", "ola", "obrigado por ligar"],
    "abertura": ["bom dia", "boa tarde", "em que posso ajudar", "o meu nome e"],
    "necessidade": ["duvida", "gostava de saber", "precisa", "necessita"],
    "necessidades": ["duvida", "gostava de saber", "precisa", "necessita"],
    "escuta": ["compreendo", "entendo", "muito bem", "claro"],
    "solucao": ["recomendo", "oferecemos", "plano"],
    "solucoes": ["recomendo", "oferecemos", "plano"],
    "objecoes": ["compreendo a sua preocupacao", "experimentar", "teste gratuito"],
    "clareza": ["inclui", "custa", "por mes"],
    "profissional": ["obrigado", "obrigada", "sr.", "sra."],
    "proximo": ["enviar", "enviarei", "agendar", "marcar", "ligarei"],
    "passo": ["enviar", "enviarei", "agendar", "marcar", "ligarei"],
    "fecho": ["tenha um", "ate breve", "obrigada pela sua chamada", "obrigado pela sua chamada"],
}

NEXT_STEP_CUES = (
    "enviar", "enviarei", "envio", "ligarei", "vou ligar", "voltarei",
    "agendar", "agendo", "marcar", "marcamos", "confirmarei", "follow up",
)


def fold(text: str) -> str:
    """Lower-case and strip accents so "Reclamação" matches "reclamacao"."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def detect_risk_words(transcript: str, risk_words: Sequence[str]) -> List[str]:
    """Configured risk phrases present in the transcript, in configuration order."""
    haystack = fold(transcript)
    detected = []
    for phrase in risk_words:
        if phrase and fold(phrase) in haystack and phrase not in detected:
            detected.append(phrase)
    return detected


def split_turns(transcript: str, segments: Optional[Sequence[TranscriptSegment]] = None) -> List[Tuple[str, str, Optional[str]]]:
    """(speaker, text, timestamp) turns from the segments, or parsed from "[Speaker]: text" lines."""
    if segments:
        return [(s.speaker, s.text, s.timestamp) for s in segments]
    turns = []
    for line in (transcript or "").splitlines():
        line = line.strip()
        if not line:
            continue
        match = re.match(r"^\[([^\]]+)\]:\s*(.*)$", line)
        if match:
            turns.append((match.group(1), match.group(2), None))
        else:
            turns.append(("", line, None))
    return turns


def criterion_keywords(name: str, description: Optional[str]) -> List[str]:
    words = re.findall(r"[a-z]+", fold(f"{name} {description or ''}"))
    keywords = []
    for word in words:
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def match_category(name: Optional[str], categories: Sequence[str]) -> Optional[str]:
    """The entry of ``categories`` equal to ``name`` ignoring case, accents and surrounding spaces."""
    if not name:
        return None
    wanted = fold(str(name)).strip()
    for category in categories:
        if fold(category).strip() == wanted:
            return category
    return None


def build_highlights(verdicts: Sequence[CriterionVerdict]) -> Tuple[List[Highlight], List[Highlight]]:
    went_well = [
        Highlight(text=v.justification, timestamp=v.timestamp_reference or format_timestamp(30 + i * 40))
        for i, v in enumerate([v for v in verdicts if v.passed][:3])
    ]
    went_wrong = [
        Highlight(text=v.justification, timestamp=v.timestamp_reference or format_timestamp(90))
        for v in [v for v in verdicts if not v.passed][:2]
    ]
    return went_well, went_wrong


class AnalysisBackend:
    """An evaluator that produces summary, next step and per-criterion verdicts."""

    async def analyze(
        self, transcript: str, criteria: Sequence, categories: Optional[Sequence[str]] = None
    ) -> AnalysisResult:
        raise NotImplementedError


class KeywordAnalysisBackend:
    """Deterministic evaluator: a criterion passes when the transcript shows evidence for one of its keywords."""

    def evaluate_criterion(
        self,
        criterion,
        turns: Sequence[Tuple[str, str, Optional[str]]],
        risk_words: Sequence[str],
    ) -> CriterionVerdict:
        name = criterion.name
        folded_name = fold(name)
        keywords = criterion_keywords(name, getattr(criterion, "description", None))

        timestamp = None
        if "risco" in folded_name:
            passed = not risk_words
        else:
            cues = []
            for keyword in keywords:
                cues.append(keyword)
                cues.extend(KEYWORD_CUES.get(keyword, []))
            passed = False
            for _, text, turn_timestamp in turns:
                folded_text = fold(text)
                if any(cue in folded_text for cue in cues):
                    passed = True
                    timestamp = turn_timestamp
                    break

        if passed:
            justification = f"O agente demonstrou {name.lower()} de forma adequada."
        else:
            justification = f"O agente poderia melhorar em {name.lower()}."
        return CriterionVerdict(
            criterion_id=getattr(criterion, "id", None),
            criterion_name=name,
            passed=passed,
            justification=justification,
            timestamp_reference=timestamp,
            weight=getattr(criterion, "weight", None) or 1,
        )

    def summarize(self, turns: Sequence[Tuple[str, str, Optional[str]]]) -> str:
        if not turns:
            return "Sem transcricao disponivel para resumir."
        agent_turns = [t for t in turns if fold(t[0]) in ("agent", "agente")]
        client_turns = [t for t in turns if fold(t[0]) in ("client", "cliente")]
        summary = f"Chamada com {len(turns)} intervencoes ({len(agent_turns)} do agente, {len(client_turns)} do cliente)."
        if client_turns:
            reason = client_turns[0][1]
            summary += f" Motivo do contacto: {reason}"
        return summary

    def next_step(self, turns: Sequence[Tuple[str, str, Optional[str]]]) -> str:
        agent_turns = [t for t in turns if fold(t[0]) in ("agent", "agente")] or list(turns)
        for _, text, _ in reversed(agent_turns):
            if any(cue in fold(text) for cue in NEXT_STEP_CUES):
                return text.strip()
        return ""

    def detect_category(
        self,
        verdicts: Sequence[CriterionVerdict],
        criteria: Sequence,
        categories: Optional[Sequence[str]],
    ) -> Optional[str]:
        """Category whose own criteria passed most often; ties go to the earlier category.

        Only agents working in more than one category get a detected category.
        """
        if not categories or len(categories) < 2:
            return None
        categories = list(categories)
        passed = {category: 0 for category in categories}
        for criterion, verdict in zip(criteria, verdicts):
            category = match_category(getattr(criterion, "category", None), categories)
            if category is not None and verdict.passed:
                passed[category] += 1
        return max(categories, key=lambda c: (passed[c], -categories.index(c)))

    def evaluate(
        self,
        transcript: str,
        criteria: Sequence,
        segments: Optional[Sequence[TranscriptSegment]] = None,
        risk_words: Sequence[str] = (),
        categories: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        turns = split_turns(transcript, segments)
        verdicts = [self.evaluate_criterion(c, turns, risk_words) for c in criteria]
        went_well, went_wrong = build_highlights(verdicts)
        return AnalysisResult(
            summary=self.summarize(turns),
            next_step=self.next_step(turns),
            criteria_results=verdicts,
            risk_words=list(risk_words),
            what_went_well=went_well,
            what_went_wrong=went_wrong,
            detected_category=self.detect_category(verdicts, criteria, categories),
        )


ANALYSIS_SYSTEM_PROMPT = """You are a call center QA analyst. Evaluate the call transcript against each criterion.

Return your analysis as a JSON object with these exact fields:
{
    "summary": "Two or three sentence summary of the call",
    "next_step": "Concrete next step agreed in the call, or an empty string",
    "criteria": [
        {"criterion_id": 1, "passed": true, "justification": "Why", "timestamp_reference": "MM:SS or null"}
    ],
    "what_went_well": [{"text": "...", "timestamp": "MM:SS"}],
    "what_went_wrong": [{"text": "...", "timestamp": "MM:SS"}]
}

Include exactly one entry in "criteria" for every criterion you are given. Answer in the language of the transcript."""


class OpenAIAnalysisBackend(AnalysisBackend):
    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o"):
        self.client = client
        self.model = model

    def build_prompt(self, transcript: str, criteria: Sequence, categories: Optional[Sequence[str]] = None) -> str:
        lines = [
            f"- id={c.id}; name={c.name}; weight={c.weight}; category={getattr(c, 'category', 'all')}; "
            f"description={getattr(c, 'description', '') or ''}"
            for c in criteria
        ]
        prompt = "Criteria:\n" + "\n".join(lines)
        if categories and len(categories) > 1:
            prompt += (
                f"\n\nThe agent works in these categories: {', '.join(categories)}. "
                "Add a \"detected_category\" field with the exact name of the one category this call belongs to."
            )
        return prompt + f"\n\nAnalyze this call transcript:\n\n{transcript}"

    async def analyze(
        self, transcript: str, criteria: Sequence, categories: Optional[Sequence[str]] = None
    ) -> AnalysisResult:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(transcript, criteria, categories)},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        content = (response.choices[0].message.content or "").strip()
        if content.startswith("```json"):
            content = content[7:-3]
        elif content.startswith("```"):
            content = content[3:-3]
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise BackendError(f"Analysis reply is not valid JSON: {e}") from e

        names = {c.id: c.name for c in criteria}
        verdicts = []
        for item in data.get("criteria") or []:
            criterion_id = item.get("criterion_id")
            if criterion_id not in names:
                continue
            verdicts.append(CriterionVerdict(
                criterion_id=criterion_id,
                criterion_name=names[criterion_id],
                passed=bool(item.get("passed")),
                justification=str(item.get("justification") or ""),
                timestamp_reference=item.get("timestamp_reference") or None,
            ))
        return AnalysisResult(
            summary=str(data.get("summary") or ""),
            next_step=str(data.get("next_step") or ""),
            criteria_results=verdicts,
            what_went_well=[Highlight(**h) for h in data.get("what_went_well") or [] if h.get("text")],
            what_went_wrong=[Highlight(**h) for h in data.get("what_went_wrong") or [] if h.get("text")],
            detected_category=match_category(data.get("detected_category"), categories or []),
        )


class CallAnalyzer:
    def __init__(
        self,
        risk_words: Sequence[str],
        backend: Optional[AnalysisBackend] = None,
        fallback: Optional[KeywordAnalysisBackend] = None,
        timeout_seconds: float = 60.0,
    ):
        self.risk_words = list(risk_words)
        self.backend = backend
        self.fallback = fallback or KeywordAnalysisBackend()
        self.timeout_seconds = timeout_seconds

    async def analyze(
        self,
        transcript: str,
        criteria: Sequence,
        segments: Optional[Sequence[TranscriptSegment]] = None,
        risk_words: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        """Verdicts for ``criteria`` in the same order; ``risk_words`` replaces the configured list for this call.

        ``categories`` are the agent's category names; with more than one, the
        result names the category the call was detected as.
        """
        risk_words = detect_risk_words(transcript, self.risk_words if risk_words is None else risk_words)

        if self.backend is not None and transcript:
            try:
                result = await asyncio.wait_for(
                    self.backend.analyze(transcript, criteria, categories), timeout=self.timeout_seconds
                )
                return self._align(result, transcript, criteria, segments, risk_words, categories)
            except asyncio.TimeoutError:
                logger.warning(f"Analysis timed out after {self.timeout_seconds}s; using keyword evaluation")
            except Exception as e:
                logger.error(f"Analysis backend failed: {e}; using keyword evaluation")

        return self.fallback.evaluate(transcript, criteria, segments, risk_words, categories)

    def _align(
        self,
        result: AnalysisResult,
        transcript: str,
        criteria: Sequence,
        segments: Optional[Sequence[TranscriptSegment]],
        risk_words: List[str],
        categories: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        """Put verdicts in criteria order, one per criterion; gaps are filled by the keyword evaluator."""
        by_id: Dict[int, CriterionVerdict] = {}
        for verdict in result.criteria_results:
            by_id.setdefault(verdict.criterion_id, verdict)

        turns = split_turns(transcript, segments)
        aligned = []
        for criterion in criteria:
            verdict = by_id.get(criterion.id)
            if verdict is None:
                logger.warning(f"Analysis reply missing criterion {criterion.id}; using keyword evaluation for it")
                verdict = self.fallback.evaluate_criterion(criterion, turns, risk_words)
            aligned.append(verdict.model_copy(update={"weight": criterion.weight or 1}))

        went_well, went_wrong = build_highlights(aligned)
        return result.model_copy(update={
            "criteria_results": aligned,
            "risk_words": risk_words,
            "what_went_well": result.what_went_well or went_well,
            "what_went_wrong": result.what_went_wrong or went_wrong,
            "summary": result.summary or self.fallback.summarize(turns),
            "detected_category": self._detected_category(result, aligned, criteria, categories),
        })

    def _detected_category(
        self,
        result: AnalysisResult,
        verdicts: Sequence[CriterionVerdict],
        criteria: Sequence,
        categories: Optional[Sequence[str]],
    ) -> Optional[str]:
        # A reply naming a category the agent does not work in is ignored
        if not categories or len(categories) < 2:
            return None
        return (
            match_category(result.detected_category, categories)
            or self.fallback.detect_category(verdicts, criteria, categories)
        )
