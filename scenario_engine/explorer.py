"""
Context Explorer

Gathers domain knowledge for a free-form reference and narrows it to one
generation target.

Sources, in priority order:
    1. change history, grouped by domain heading
    2. per-feature requirement/specification directories (fuzzy slug match)
    3. module README documents under related paths
    4. source identifiers (last resort, capped hit count)

Sources 1-3 are independent reads and run concurrently; all of them are
joined before ranking. Source 4 runs only when none of them produced an
adequate candidate. A source that fails to read counts as empty.
"""

import concurrent.futures
import logging
from typing import Callable, Dict, List, Optional, Tuple

from scenario_engine.artifact_scanner import ArtifactScanner
from scenario_engine.config import EngineConfig
from scenario_engine.domains import DomainResolver
from scenario_engine.error_handling import InputAmbiguityError, NoMatchError
from scenario_engine.interaction import InteractionChannel
from scenario_engine.knowledge import IDENTIFIER_RE, KnowledgeBase, SpecFeature
from scenario_engine.schemas import (
    Candidate,
    FeatureContext,
    FeatureEntry,
    FeatureFacts,
    KnowledgeDocument,
)
from scenario_engine.text_utils import (
    keyword_score,
    keywords,
    normalize_name,
    quoted_values,
    slugify,
    title_from_slug,
    tokenize,
)

logger = logging.getLogger(__name__)

# Domain-level signals weigh less than a matching feature directory
CHANGELOG_WEIGHT = 0.7
README_WEIGHT = 0.7
SOURCE_WEIGHT = 0.6
CORROBORATION_BONUS = 0.1

# Words marking a Given step as setting up an acting user rather than a record
ACTOR_WORDS = frozenset({"user", "role", "actor", "persona", "logged"})


def feature_name_from_slug(slug: str) -> str:
    """Strip a requirement identifier from a directory slug ('uc-ab12-003-login' -> 'login')."""
    name = IDENTIFIER_RE.sub("", slug).strip("-_ ")
    return slugify(name) or slugify(slug)


class CandidateGroup:
    """Candidates describing the same underlying feature."""

    def __init__(self, key: str, domain: str, slug: Optional[str] = None):
        self.key = key
        self.domain = domain
        self.slug = slug
        self.candidates: List[Candidate] = []

    @property
    def confidence(self) -> float:
        best = max(c.confidence for c in self.candidates)
        sources = {c.source for c in self.candidates}
        return min(1.0, best + CORROBORATION_BONUS * (len(sources) - 1))

    @property
    def facts(self) -> FeatureFacts:
        facts = FeatureFacts()
        for candidate in sorted(self.candidates, key=lambda c: -c.confidence):
            facts = facts.merged(candidate.facts)
        return facts

    @property
    def documents(self) -> List[KnowledgeDocument]:
        seen = set()
        documents = []
        for candidate in self.candidates:
            for doc in candidate.documents:
                if doc.path not in seen:
                    seen.add(doc.path)
                    documents.append(doc)
        return documents

    @property
    def label(self) -> str:
        title = self.facts.title or (title_from_slug(self.slug) if self.slug else self.domain)
        paths = ", ".join(doc.path for doc in self.documents[:3])
        return f"{title} [{self.domain}] ({paths}) - confidence {self.confidence:.2f}"


class ContextExplorer:
    """
    Explores the knowledge base for a free-form reference.

    Usage:
        explorer = ContextExplorer(fs, config, channel, domain_resolver)
        context = explorer.explore("password reset")
    """

    def __init__(
        self,
        fs,
        config: EngineConfig,
        channel: InteractionChannel,
        domain_resolver: DomainResolver,
        max_workers: int = 3
    ):
        self.kb = KnowledgeBase(fs, config)
        self.config = config
        self.thresholds = config.thresholds
        self.channel = channel
        self.domains = domain_resolver
        self.max_workers = max_workers
        self.skipped_sources: List[str] = []

    # Public API

    def explore(self, text: str) -> FeatureContext:
        """
        Resolve a free-form reference to a feature context.

        Args:
            text: Free-form description

        Returns:
            FeatureContext built from the selected candidate group(s)

        Raises:
            NoMatchError: Nothing in the knowledge base matches
            InputAmbiguityError: Several unrelated candidates and no selection
        """
        candidates = self.gather(text)
        groups = self.rank(candidates)
        if not groups:
            raise NoMatchError(
                f"No match for '{text}' in the knowledge base",
                context={"reference": text, "keywords": ", ".join(keywords(text))},
            )
        if len(groups) == 1:
            logger.info("Single candidate for '%s': %s", text, groups[0].key)
            return self._context_from_groups(text, groups)

        labels = [group.label for group in groups]
        selected = self.channel.choose(
            f"'{text}' matches {len(groups)} different features. Which should scenarios be generated for?",
            labels,
            multi_select=True,
        )
        chosen = [group for group, label in zip(groups, labels) if label in selected]
        if not chosen:
            raise InputAmbiguityError(
                f"No candidate selected for '{text}'",
                context={"candidates": len(groups)},
            )
        return self._context_from_groups(text, chosen)

    def gather(self, text: str) -> List[Candidate]:
        """
        Query every knowledge source and join the results.

        Returns:
            Candidates from all sources that produced a hit
        """
        search_keywords = keywords(text)
        if not search_keywords:
            return []

        sources: Dict[str, Callable[[List[str]], List[Candidate]]] = {
            "changelog": self._from_changelog,
            "feature-docs": self._from_feature_docs,
            "readme": self._from_readmes,
        }
        candidates: List[Candidate] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_source = {
                executor.submit(query, search_keywords): name for name, query in sources.items()
            }
            results: Dict[str, List[Candidate]] = {}
            for future in concurrent.futures.as_completed(future_to_source):
                name = future_to_source[future]
                results[name] = self._result_or_empty(name, future)
        for name in sources:
            candidates.extend(results.get(name, []))

        if not any(c.confidence >= self.thresholds.adequate_confidence for c in candidates):
            logger.debug("No adequate candidate from documents; searching source identifiers")
            try:
                candidates.extend(self._from_source(search_keywords))
            except (OSError, ValueError) as e:
                self._skip("source", e)

        logger.debug("Gathered %d candidates for %s", len(candidates), search_keywords)
        return candidates

    def rank(self, candidates: List[Candidate]) -> List[CandidateGroup]:
        """
        Group candidates by underlying feature and drop weak groups.

        Feature-directory hits group by slug; domain-level hits attach to a
        slug group of the same domain, otherwise they group by domain.
        """
        groups: Dict[str, CandidateGroup] = {}
        for candidate in candidates:
            if candidate.feature_slug:
                group = groups.setdefault(
                    candidate.key,
                    CandidateGroup(candidate.key, candidate.domain, candidate.feature_slug),
                )
                group.candidates.append(candidate)

        for candidate in candidates:
            if candidate.feature_slug:
                continue
            same_domain = sorted(
                key for key, group in groups.items() if group.slug and group.domain == candidate.domain
            )
            if same_domain:
                groups[same_domain[0]].candidates.append(candidate)
            else:
                groups.setdefault(candidate.key, CandidateGroup(candidate.key, candidate.domain)).candidates.append(candidate)

        kept = [g for g in groups.values() if g.confidence >= self.thresholds.min_candidate_score]
        kept.sort(key=lambda g: (-g.confidence, g.key))
        return kept

    def context_for_identifier(self, feature: SpecFeature) -> FeatureContext:
        """Build the context for a requirement located by identifier."""
        name = feature_name_from_slug(feature.slug)
        facts = feature.facts
        domain = self.domains.resolve(
            f"{facts.title} {name}",
            hints=[feature.domain_hint, self._changelog_domain(f"{feature.identifier or ''} {facts.title}")],
        )
        return FeatureContext(
            domain=domain,
            feature_name=name,
            title=facts.title or title_from_slug(name),
            summary=facts.summary,
            facts=facts,
            documents=feature.to_documents(),
            identifier=feature.identifier,
        )

    def context_for_feature(self, entry: FeatureEntry) -> FeatureContext:
        """
        Build the context for an existing catalog entry.

        Actors and entities already named by the feature's Given steps come
        first; the feature directory whose slug names the same feature adds
        its facts, when the knowledge base has one.
        """
        facts = self._facts_from_feature_files(entry)
        documents: List[KnowledgeDocument] = []
        identifier = None
        try:
            for feature in self.kb.spec_features():
                if feature_name_from_slug(feature.slug) == normalize_name(entry.name):
                    facts = facts.merged(feature.facts)
                    documents = feature.to_documents()
                    identifier = feature.identifier
                    break
        except (OSError, ValueError) as e:
            self._skip("feature-docs", e)
        return FeatureContext(
            domain=entry.domain,
            feature_name=entry.name,
            title=entry.title or title_from_slug(entry.name),
            summary=entry.summary or facts.summary,
            facts=facts,
            documents=documents,
            identifier=identifier,
        )

    def _facts_from_feature_files(self, entry: FeatureEntry) -> FeatureFacts:
        """Actors and entities quoted in the Given steps of an existing feature's files."""
        scanner = ArtifactScanner(self.kb.fs, self.config.paths)
        actors: List[str] = []
        entities: List[str] = []
        for relative in entry.files:
            doc = scanner.parse_feature_file(f"{self.config.paths.features}/{relative}")
            givens = list(doc.background) + [step for block in doc.scenarios for step in block.givens]
            for step in givens:
                values = quoted_values(step.text)
                if not values:
                    continue
                found = actors if ACTOR_WORDS & set(tokenize(step.text)) else entities
                if values[0].casefold() not in {value.casefold() for value in found}:
                    found.append(values[0])
        logger.debug("Feature %s names actors %s and entities %s", entry.name, actors, entities)
        return FeatureFacts(title=entry.title, summary=entry.summary, actors=actors, entities=entities)

    # Sources

    def _from_changelog(self, search_keywords: List[str]) -> List[Candidate]:
        by_domain: Dict[str, Tuple[float, List[KnowledgeDocument], List[str]]] = {}
        for entry in self.kb.changelog_entries():
            score = keyword_score(search_keywords, entry.text)
            if score <= 0:
                continue
            domain = self.domains.resolve(entry.text, hints=[entry.domain])
            best, docs, notes = by_domain.get(domain, (0.0, [], []))
            docs.append(KnowledgeDocument(
                path=f"{self.config.paths.changelog_path}:{entry.line}",
                kind="changelog",
                excerpt=entry.text,
            ))
            notes.append(entry.text)
            by_domain[domain] = (max(best, score), docs, notes)

        return [
            Candidate(
                domain=domain,
                documents=docs,
                confidence=round(score * CHANGELOG_WEIGHT, 4),
                source="changelog",
                facts=FeatureFacts(summary=notes[0]),
            )
            for domain, (score, docs, notes) in sorted(by_domain.items())
        ]

    def _from_feature_docs(self, search_keywords: List[str]) -> List[Candidate]:
        candidates = []
        for feature in self.kb.spec_features():
            name = feature_name_from_slug(feature.slug)
            score = max(
                keyword_score(search_keywords, name.replace("-", " ")),
                keyword_score(search_keywords, feature.facts.title),
            )
            if score <= 0:
                continue
            domain = self.domains.resolve(
                f"{feature.facts.title} {name}",
                hints=[feature.domain_hint, self._changelog_domain(feature.facts.title)],
            )
            candidates.append(Candidate(
                domain=domain,
                feature_slug=feature.slug,
                documents=feature.to_documents(),
                confidence=round(score, 4),
                source="feature-docs",
                facts=feature.facts,
            ))
        return candidates

    def _from_readmes(self, search_keywords: List[str]) -> List[Candidate]:
        candidates = []
        for path in self.kb.readmes():
            directories = path.rsplit("/", 1)[0]
            score = keyword_score(search_keywords, directories.replace("/", " ").replace("_", " "))
            if score <= 0:
                continue
            module = directories.rsplit("/", 1)[-1]
            document = self.kb.read_readme(path)
            candidates.append(Candidate(
                domain=self.domains.resolve(module),
                documents=[document],
                confidence=round(score * README_WEIGHT, 4),
                source="readme",
                facts=FeatureFacts(summary=document.excerpt),
            ))
        return candidates

    def _from_source(self, search_keywords: List[str]) -> List[Candidate]:
        by_domain: Dict[str, Tuple[float, List[KnowledgeDocument], List[str]]] = {}
        for hit in self.kb.search_source(search_keywords, self.thresholds.max_code_hits):
            parts = hit.path.split("/")
            module = parts[-2] if len(parts) > 1 else parts[-1].split(".", 1)[0]
            domain = self.domains.resolve(module)
            score = keyword_score(search_keywords, f"{hit.path} {hit.line}".replace("_", " "))
            best, docs, identifiers = by_domain.get(domain, (0.0, [], []))
            docs.append(KnowledgeDocument(path=f"{hit.path}:{hit.line_number}", kind="source", excerpt=hit.line))
            identifiers.append(hit.line)
            by_domain[domain] = (max(best, score), docs, identifiers)

        return [
            Candidate(
                domain=domain,
                documents=docs,
                confidence=round(score * SOURCE_WEIGHT, 4),
                source="source",
                facts=FeatureFacts(identifiers=identifiers),
            )
            for domain, (score, docs, identifiers) in sorted(by_domain.items())
        ]

    # Helpers

    def _changelog_domain(self, text: str) -> Optional[str]:
        """Change-history domain whose notes best match text (score >= 0.5)."""
        search_keywords = keywords(text)
        if not search_keywords:
            return None
        best, best_score = None, 0.0
        try:
            entries = self.kb.changelog_entries()
        except (OSError, ValueError) as e:
            self._skip("changelog", e)
            return None
        for entry in entries:
            score = keyword_score(search_keywords, entry.text)
            if score > best_score:
                best, best_score = entry.domain, score
        return best if best_score >= 0.5 else None

    def _result_or_empty(self, name: str, future) -> List[Candidate]:
        try:
            return future.result()
        except (OSError, ValueError) as e:
            self._skip(name, e)
            return []

    def _skip(self, name: str, error: Exception) -> None:
        logger.warning("Knowledge source '%s' unavailable, treated as empty: %s", name, error)
        self.skipped_sources.append(name)

    def _context_from_groups(self, text: str, groups: List[CandidateGroup]) -> FeatureContext:
        facts = FeatureFacts()
        documents: List[KnowledgeDocument] = []
        for group in groups:
            facts = facts.merged(group.facts)
            documents.extend(doc for doc in group.documents if doc not in documents)

        domain = DomainResolver.combine([group.domain for group in groups])
        if len(groups) == 1 and groups[0].slug:
            name = feature_name_from_slug(groups[0].slug)
        else:
            name = slugify(text, max_words=5)
        title = facts.title if len(groups) == 1 and facts.title else title_from_slug(name)
        identifier = None
        for doc in documents:
            match = IDENTIFIER_RE.search(doc.path)
            if match:
                identifier = match.group(1)
                break
        return FeatureContext(
            domain=domain,
            feature_name=name,
            title=title,
            summary=facts.summary,
            facts=facts.model_copy(update={"title": title}),
            documents=documents,
            identifier=identifier,
        )
