from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
from pydantic import Field

from cinematifier.chunker.model import Chunk
from cinematifier.chunker.planner import DEFAULT_MAX_CHARS, ChunkPlanner
from cinematifier.memory.context import ContextMemory
from cinematifier.memory.embeddings import Embedder, HashingEmbedder, RemoteEmbedder
from cinematifier.offline.engine import OfflineFallbackEngine
from cinematifier.parser.block_parser import BlockParser
from cinematifier.parser.model import (
    BlockIdGenerator,
    BlockType,
    CamelModel,
    CharacterAppearance,
    CinematicBlock,
)
from cinematifier.parser.streaming import StreamingBlockParser
from cinematifier.parser.tags import extract_overall_metadata, extract_summary
from cinematifier.prompt_builder.builder import ChunkPromptBuilder
from cinematifier.providers.circuit_breaker import CircuitOpenError
from cinematifier.providers.client import ResilientProviderClient
from cinematifier.providers.errors import ConfigurationError, ProviderError
from cinematifier.providers.model import ProviderConfig, ProviderName
from cinematifier.runtime import ResilienceContext
from cinematifier.segmenter.chapters import build_book, segment_chapters
from cinematifier.segmenter.model import Book, BookGenre, Chapter
from cinematifier.segmenter.paragraphs import reconstruct_paragraphs

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
ChunkCallback = Callable[[List[CinematicBlock]], None]
# Receives the ids of streamed blocks withdrawn when their chunk falls back.
RetractCallback = Callable[[List[str]], None]

AI_DISABLED = "none"
DEFAULT_API_KEY_ENVS: Dict[str, str] = {
    ProviderName.GEMINI.value: "GEMINI_API_KEY",
    ProviderName.OPENAI.value: "OPENAI_API_KEY",
    ProviderName.ANTHROPIC.value: "ANTHROPIC_API_KEY",
    ProviderName.GROQ.value: "GROQ_API_KEY",
    ProviderName.DEEPSEEK.value: "DEEPSEEK_API_KEY",
}


class PipelineConfig(CamelModel):
    provider: str = AI_DISABLED
    model: Optional[str] = None
    api_key_envs: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_API_KEY_ENVS))
    ollama_url: Optional[str] = None
    ollama_url_env: str = "OLLAMA_URL"
    proxy_url: Optional[str] = None
    max_chunk_chars: int = DEFAULT_MAX_CHARS
    request_timeout: float = 60.0
    max_tokens_cap: int = 4096
    temperature: Optional[float] = None
    use_streaming: bool = True
    reconstruct_paragraphs: bool = True
    # Long-range memory
    memory_top_k: int = 2
    embedding_url: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_api_key_env: str = "OPENAI_API_KEY"
    embedding_dimensions: int = 256

    @classmethod
    def from_file(cls, path: Path) -> "PipelineConfig":
        text = path.read_text(encoding="utf-8")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            import yaml  # type: ignore[import-untyped]

            payload = yaml.safe_load(text)
        return cls.model_validate(payload or {})

    @classmethod
    def from_env(cls, **overrides: object) -> "PipelineConfig":
        values: Dict[str, object] = {}
        env_map = {
            "CINEMATIFIER_PROVIDER": "provider",
            "CINEMATIFIER_MODEL": "model",
            "CINEMATIFIER_PROXY_URL": "proxy_url",
            "CINEMATIFIER_EMBEDDING_URL": "embedding_url",
            "CINEMATIFIER_EMBEDDING_MODEL": "embedding_model",
            "CINEMATIFIER_EMBEDDING_API_KEY_ENV": "embedding_api_key_env",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    @property
    def ai_enabled(self) -> bool:
        return self.provider.strip().lower() != AI_DISABLED

    def provider_config(self) -> Optional[ProviderConfig]:
        """Resolve credentials for the selected provider; None when AI is disabled."""
        if not self.ai_enabled:
            return None
        try:
            provider = ProviderName(self.provider.strip().lower())
        except ValueError as exc:
            choices = ", ".join([AI_DISABLED] + [name.value for name in ProviderName])
            raise ConfigurationError(f"Unsupported provider '{self.provider}'. Choose one of: {choices}") from exc

        key_env = self.api_key_envs.get(provider.value)
        api_key = os.getenv(key_env) if key_env else None
        config = ProviderConfig(
            provider=provider,
            api_key=api_key,
            model=self.model,
            base_url=self.ollama_url or os.getenv(self.ollama_url_env),
            proxy_url=self.proxy_url,
            timeout=self.request_timeout,
            max_tokens_cap=self.max_tokens_cap,
            temperature=self.temperature,
        )
        if config.requires_api_key and not api_key:
            raise ConfigurationError(
                f"Missing API key for {provider.value}. Set {key_env} in your environment or configure a proxy_url."
            )
        return config

    def build_embedder(
        self,
        context: ResilienceContext,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> Embedder:
        if not self.embedding_url:
            return HashingEmbedder(self.embedding_dimensions)
        return RemoteEmbedder(
            self.embedding_url,
            self.embedding_model,
            api_key=os.getenv(self.embedding_api_key_env),
            http_client=http_client,
            breaker=context.breakers.get(f"embeddings:{self.embedding_url}"),
        )


class OrchestratorState(str, Enum):
    IDLE = "idle"
    SEGMENTING = "segmenting"
    PROMPTING = "prompting"
    AWAITING_RESPONSE = "awaiting_response"
    PARSING = "parsing"
    UPDATING_CONTEXT = "updating_context"
    ERROR = "error"
    FALLBACK = "fallback"
    DONE = "done"


class ResultMetadata(CamelModel):
    original_word_count: int = 0
    cinematified_word_count: int = 0
    sfx_count: int = 0
    transition_count: int = 0
    beat_count: int = 0
    processing_time_ms: int = 0
    fallback_chunks: int = 0
    genre: Optional[str] = None
    tone_tags: List[str] = Field(default_factory=list)
    characters: Dict[str, CharacterAppearance] = Field(default_factory=dict)


class CinematificationResult(CamelModel):
    blocks: List[CinematicBlock]
    raw_text: Optional[str] = None
    metadata: ResultMetadata

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ChapterResult(CamelModel):
    chapter: Chapter
    result: CinematificationResult


class BookResult(CamelModel):
    book: Book
    chapters: List[ChapterResult]

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def summarize_blocks(
    blocks: List[CinematicBlock],
    original_text: str,
    started: float,
    raw_text: Optional[str] = None,
    fallback_chunks: int = 0,
) -> ResultMetadata:
    narrative = extract_overall_metadata(raw_text, blocks)
    return ResultMetadata(
        original_word_count=len(original_text.split()),
        cinematified_word_count=sum(block.word_count for block in blocks),
        sfx_count=sum(1 for block in blocks if block.type is BlockType.SFX),
        transition_count=sum(1 for block in blocks if block.type is BlockType.TRANSITION),
        beat_count=sum(1 for block in blocks if block.type is BlockType.BEAT),
        processing_time_ms=round((time.perf_counter() - started) * 1000),
        fallback_chunks=fallback_chunks,
        genre=narrative.genre,
        tone_tags=narrative.tone_tags,
        characters=narrative.characters,
    )


@dataclass
class _RunState:
    """Accumulators for one ``cinematify`` call."""

    blocks: List[CinematicBlock] = field(default_factory=list)
    raw_parts: List[str] = field(default_factory=list)
    fallback_chunks: int = 0


@dataclass
class CinematificationOrchestrator:
    context: ResilienceContext
    client: ResilientProviderClient
    prompt_builder: ChunkPromptBuilder
    memory_factory: Callable[[PipelineConfig], ContextMemory]
    state: OrchestratorState = OrchestratorState.IDLE

    @classmethod
    def default(
        cls,
        context: Optional[ResilienceContext] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "CinematificationOrchestrator":
        context = context or ResilienceContext.create()
        client = ResilientProviderClient(context, http_client=http_client)

        def memory_factory(config: PipelineConfig) -> ContextMemory:
            embedder = config.build_embedder(context, http_client=http_client)
            return ContextMemory(embedder, top_k=config.memory_top_k)

        return cls(
            context=context,
            client=client,
            prompt_builder=ChunkPromptBuilder(),
            memory_factory=memory_factory,
        )

    @property
    def ids(self) -> BlockIdGenerator:
        return self.context.ids

    def _enter(self, state: OrchestratorState) -> None:
        logger.debug("Orchestrator %s -> %s", self.state.value, state.value)
        self.state = state

    async def cinematify(
        self,
        text: str,
        config: PipelineConfig,
        on_progress: Optional[ProgressCallback] = None,
        on_chunk: Optional[ChunkCallback] = None,
        *,
        on_retract: Optional[RetractCallback] = None,
        chapter_title: Optional[str] = None,
        memory: Optional[ContextMemory] = None,
    ) -> CinematificationResult:
        started = time.perf_counter()
        self._enter(OrchestratorState.SEGMENTING)
        # Configuration problems surface before any chunk runs.
        provider_config = config.provider_config()

        source = reconstruct_paragraphs(text) if config.reconstruct_paragraphs else text
        plan = ChunkPlanner(config.max_chunk_chars).plan(source)
        memory = memory or self.memory_factory(config)
        run = _RunState()
        total = len(plan)
        logger.info(
            "Cinematifying %d chunk(s) with %s",
            total,
            provider_config.provider.value if provider_config else "offline engine",
        )

        for chunk in plan.chunks:
            if on_progress:
                on_progress(chunk.index / total, f"Cinematifying section {chunk.index + 1} of {total}...")
            if provider_config is None:
                self._enter(OrchestratorState.PARSING)
                self._emit(run, self._offline(chunk.text), on_chunk)
                continue
            await self._process_chunk(
                chunk, total, provider_config, config, memory, run, on_chunk, on_retract, chapter_title
            )

        raw_text = "\n\n".join(run.raw_parts) if run.raw_parts else None
        metadata = summarize_blocks(run.blocks, text, started, raw_text, run.fallback_chunks)
        self._enter(OrchestratorState.DONE)
        if on_progress:
            on_progress(1.0, "Cinematification complete")
        logger.info(
            "Produced %d block(s) in %d ms (%d fallback chunk(s))",
            len(run.blocks),
            metadata.processing_time_ms,
            run.fallback_chunks,
        )
        return CinematificationResult(blocks=run.blocks, raw_text=raw_text, metadata=metadata)

    async def _process_chunk(
        self,
        chunk: Chunk,
        total: int,
        provider_config: ProviderConfig,
        config: PipelineConfig,
        memory: ContextMemory,
        run: _RunState,
        on_chunk: Optional[ChunkCallback],
        on_retract: Optional[RetractCallback],
        chapter_title: Optional[str],
    ) -> None:
        self._enter(OrchestratorState.PROMPTING)
        window = await memory.recall(chunk.text)
        prompt = self.prompt_builder.build(
            chunk,
            window,
            total_chunks=total,
            chapter_title=chapter_title,
            first_chunk=chunk.index == 0 and not memory.history,
        )
        parser = BlockParser(self.ids)
        chunk_blocks: List[CinematicBlock] = []

        try:
            self._enter(OrchestratorState.AWAITING_RESPONSE)
            if config.use_streaming:
                streamer = StreamingBlockParser(parser)
                deltas = self.client.stream(prompt.user, provider_config, system=prompt.system)
                async for block in streamer.parse_stream(deltas):
                    if self.state is not OrchestratorState.PARSING:
                        self._enter(OrchestratorState.PARSING)
                    chunk_blocks.append(block)
                    # Without a retract handler, blocks wait until the chunk succeeds.
                    if on_chunk and on_retract:
                        on_chunk([block])
                raw = streamer.raw_text
                if on_chunk and not on_retract and chunk_blocks:
                    on_chunk(chunk_blocks)
            else:
                raw = await self.client.call(prompt.user, provider_config, system=prompt.system)
                self._enter(OrchestratorState.PARSING)
                chunk_blocks = parser.parse(raw)
                if on_chunk and chunk_blocks:
                    on_chunk(chunk_blocks)
        except (ProviderError, CircuitOpenError) as exc:
            self._enter(OrchestratorState.ERROR)
            logger.warning("Chunk %d/%d failed (%s); using offline fallback", chunk.index + 1, total, exc)
            if chunk_blocks:
                logger.warning("Discarding %d partially streamed block(s) for chunk %d", len(chunk_blocks), chunk.index + 1)
                if on_chunk and on_retract:
                    on_retract([block.id for block in chunk_blocks])
            self._enter(OrchestratorState.FALLBACK)
            run.fallback_chunks += 1
            self._enter(OrchestratorState.PARSING)
            self._emit(run, self._offline(chunk.text), on_chunk)
            return

        run.blocks.extend(chunk_blocks)
        run.raw_parts.append(raw)
        self._enter(OrchestratorState.UPDATING_CONTEXT)
        await memory.remember(f"chunk-{chunk.index}", chunk.text, extract_summary(raw))

    def _offline(self, text: str) -> List[CinematicBlock]:
        return OfflineFallbackEngine(self.ids).generate(text)

    @staticmethod
    def _emit(run: _RunState, blocks: List[CinematicBlock], on_chunk: Optional[ChunkCallback]) -> None:
        run.blocks.extend(blocks)
        if on_chunk and blocks:
            on_chunk(blocks)

    async def cinematify_book(
        self,
        full_text: str,
        config: PipelineConfig,
        *,
        title: str = "Untitled Novel",
        author: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_chunk: Optional[ChunkCallback] = None,
        on_retract: Optional[RetractCallback] = None,
    ) -> BookResult:
        config.provider_config()
        source = reconstruct_paragraphs(full_text) if config.reconstruct_paragraphs else full_text
        book = build_book(segment_chapters(source), title, author=author)
        memory = self.memory_factory(config)
        results: List[ChapterResult] = []
        total = len(book.chapters)

        for position, chapter in enumerate(book.chapters):
            chapter.status = "processing"

            def chapter_progress(fraction: float, message: str, _position: int = position) -> None:
                if on_progress:
                    on_progress((_position + fraction) / total, f"Chapter {_position + 1}/{total}: {message}")

            result = await self.cinematify(
                chapter.original_text,
                config,
                chapter_progress,
                on_chunk,
                on_retract=on_retract,
                chapter_title=chapter.title,
                memory=memory,
            )
            chapter.status = "ready"
            results.append(ChapterResult(chapter=chapter, result=result))
            if position == 0 and result.metadata.genre:
                book.genre = BookGenre(result.metadata.genre)

        return BookResult(book=book, chapters=results)


async def cinematify_text(
    text: str,
    config: Optional[PipelineConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_chunk: Optional[ChunkCallback] = None,
    *,
    on_retract: Optional[RetractCallback] = None,
    context: Optional[ResilienceContext] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> CinematificationResult:
    orchestrator = CinematificationOrchestrator.default(context, http_client=http_client)
    async with orchestrator.client:
        return await orchestrator.cinematify(
            text, config or PipelineConfig(), on_progress, on_chunk, on_retract=on_retract
        )


async def cinematify_book(
    full_text: str,
    config: Optional[PipelineConfig] = None,
    *,
    title: str = "Untitled Novel",
    author: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_chunk: Optional[ChunkCallback] = None,
    on_retract: Optional[RetractCallback] = None,
    context: Optional[ResilienceContext] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> BookResult:
    orchestrator = CinematificationOrchestrator.default(context, http_client=http_client)
    async with orchestrator.client:
        return await orchestrator.cinematify_book(
            full_text,
            config or PipelineConfig(),
            title=title,
            author=author,
            on_progress=on_progress,
            on_chunk=on_chunk,
            on_retract=on_retract,
        )


def cinematify_offline(text: str, *, ids: Optional[BlockIdGenerator] = None) -> CinematificationResult:
    started = time.perf_counter()
    blocks = OfflineFallbackEngine(ids or BlockIdGenerator()).generate(text)
    return CinematificationResult(blocks=blocks, metadata=summarize_blocks(blocks, text, started))
