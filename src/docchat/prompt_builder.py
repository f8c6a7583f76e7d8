"""Utilities for constructing grounding prompts from retrieved passages."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from docchat.models import RetrievalResult
from docchat.telemetry import emit_prompt_event

_PROMPT_DIR = Path(__file__).resolve().parent / "prompts"

DEFAULT_PRODUCT_NAME = "this product"
CONTEXT_SEPARATOR = "\n\n---\n\n"


def _load_template(name: str) -> str:
    """Read and trim the contents of a template file."""
    return (_PROMPT_DIR / name).read_text(encoding="utf-8").strip()


_DEFAULT_SYSTEM_TEMPLATE = _load_template("default_system.md")
_RAG_ROLE_TEMPLATE = _load_template("rag_role.md")
_RAG_GUIDELINES_TEMPLATE = _load_template("rag_guidelines.md")


@dataclass(slots=True)
class SourceReference:
    index: int
    filename: str
    url: str
    primary_page: Optional[int] = None
    page_numbers: List[int] = field(default_factory=list)


@dataclass(slots=True)
class PromptBundle:
    """System prompt plus the citation data surfaced to the caller."""

    system_prompt: str
    grounded: bool
    context: str = ""
    sources: List[SourceReference] = field(default_factory=list)
    source_metadata: List[Dict[str, Any]] = field(default_factory=list)


def _page_fragment(result: RetrievalResult) -> str:
    if result.page_info and result.page_info.primary_page:
        return f"#page={result.page_info.primary_page}"
    return ""


def build_context(results: Sequence[RetrievalResult]) -> str:
    parts: List[str] = []
    for index, result in enumerate(results, start=1):
        if result.document is not None:
            header = f"[Source {index}: {result.document.filename}]({result.document.file_url}{_page_fragment(result)})"
        else:
            header = f"[Source {index}]"
        parts.append(f"{header}\n{result.chunk.content}")
    return CONTEXT_SEPARATOR.join(parts)


def build_sources(results: Sequence[RetrievalResult]) -> List[SourceReference]:
    documented = [result for result in results if result.document is not None]
    return [
        SourceReference(
            index=index,
            filename=result.document.filename,
            url=result.document.file_url,
            primary_page=result.page_info.primary_page if result.page_info else None,
            page_numbers=list(result.page_info.page_numbers) if result.page_info else [],
        )
        for index, result in enumerate(documented, start=1)
    ]


def build_source_metadata(results: Sequence[RetrievalResult]) -> List[Dict[str, Any]]:
    return [
        {
            "filename": result.document.filename,
            "url": result.document.file_url,
            "page_info": result.page_info.to_dict() if result.page_info else None,
        }
        for result in results
        if result.document is not None
    ]


def _sources_section(sources: Sequence[SourceReference]) -> str:
    if not sources:
        return ""
    lines = []
    for source in sources:
        fragment = f"#page={source.primary_page}" if source.primary_page else ""
        page_info = f" (Page {source.primary_page})" if source.primary_page else ""
        lines.append(f"- **[{source.index}]** {source.filename}{page_info}: {source.url}{fragment}")
    return (
        "## Available Source Documents\n"
        "The following source documents are available for citation. Use the exact URLs provided "
        "(including #page=X) when creating footnote links:\n\n" + "\n".join(lines)
    )


def build_rag_prompt(
    context: str,
    product_name: str,
    sources: Sequence[SourceReference] = (),
    custom_instructions: Optional[str] = None,
) -> str:
    """Compose the grounding prompt; custom instructions replace the role preamble."""

    preamble = custom_instructions.strip() if custom_instructions else _RAG_ROLE_TEMPLATE.format(product_name=product_name)
    context_section = (
        "## Documentation Context\n"
        "The following documentation has been retrieved as relevant to the user's question:\n\n"
        f"---\n{context}\n---"
    )
    sections = [
        preamble,
        _sources_section(sources),
        context_section,
        _RAG_GUIDELINES_TEMPLATE.format(product_name=product_name),
    ]
    return "\n\n".join(section for section in sections if section)


def build_default_prompt(product_name: str, custom_instructions: Optional[str] = None) -> str:
    if custom_instructions and custom_instructions.strip():
        return custom_instructions.strip()
    return _DEFAULT_SYSTEM_TEMPLATE.format(product_name=product_name)


def compose_system_prompt(
    results: Sequence[RetrievalResult],
    product_name: Optional[str] = None,
    custom_instructions: Optional[str] = None,
) -> PromptBundle:
    """Grounded prompt when passages exist, the generic prompt otherwise."""

    product_name = product_name or DEFAULT_PRODUCT_NAME
    if not results:
        bundle = PromptBundle(
            system_prompt=build_default_prompt(product_name, custom_instructions),
            grounded=False,
        )
    else:
        context = build_context(results)
        sources = build_sources(results)
        bundle = PromptBundle(
            system_prompt=build_rag_prompt(context, product_name, sources, custom_instructions),
            grounded=True,
            context=context,
            sources=sources,
            source_metadata=build_source_metadata(results),
        )

    emit_prompt_event(
        grounded=bundle.grounded,
        sources=[source.filename for source in bundle.sources],
        context_chars=len(bundle.context),
        system_prompt_len=len(bundle.system_prompt),
    )
    return bundle


__all__ = [
    "CONTEXT_SEPARATOR",
    "DEFAULT_PRODUCT_NAME",
    "PromptBundle",
    "SourceReference",
    "build_context",
    "build_default_prompt",
    "build_rag_prompt",
    "build_source_metadata",
    "build_sources",
    "compose_system_prompt",
]
