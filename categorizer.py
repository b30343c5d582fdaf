import logging
from typing import Iterable, List, Sequence, Union

from categories import CATEGORY_RULES, DEFAULT_CATEGORY, CategoryRule
from institutions import GENERIC
from schema import CandidateTransaction, ClassificationResult, Direction, Transaction

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 10


class TransactionCategorizer:
    """Categorizes transactions into court-accounting schedules using keyword rules."""

    def __init__(self, rules: Sequence[CategoryRule] = CATEGORY_RULES):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rules = tuple(rules)

    def classify(self, description: str, direction: Union[Direction, str]) -> ClassificationResult:
        """
        Pick the best-scoring category rule for a description.

        Only rules for the transaction's direction are considered. Each rule
        scores (matched patterns x weight); the highest score wins and the
        first-declared rule wins a tie.

        Args:
            description: Transaction description
            direction: RECEIPT or DISBURSEMENT

        Returns:
            ClassificationResult with code, subcategory and confidence
        """
        direction = Direction(direction)

        best_rule = None
        best_score = 0.0
        best_matched: List[str] = []

        for rule in self.rules:
            if rule.direction is not direction:
                continue
            matched = [p.pattern for p in rule.patterns if p.search(description)]
            if not matched:
                continue
            score = len(matched) * rule.weight
            if best_rule is None or score > best_score:
                best_rule, best_score, best_matched = rule, score, matched

        if best_rule is None:
            code, name = DEFAULT_CATEGORY[direction]
            self.logger.debug(f"No category rule matched '{description}', using {code}")
            return ClassificationResult(code=code, name=name, confidence=DEFAULT_CONFIDENCE)

        confidence = min(100, round(50 + 50 * best_score / best_rule.saturation))
        return ClassificationResult(
            code=best_rule.code,
            name=best_rule.name,
            sub_category=best_rule.sub_category,
            confidence=confidence,
            matched_keywords=best_matched,
        )

    def categorize(self, candidate: CandidateTransaction) -> Transaction:
        """
        Turn a complete candidate into a classified transaction.

        Args:
            candidate: Candidate with date, description and non-zero amount

        Returns:
            Immutable Transaction

        Raises:
            ValueError: if the candidate is missing a required field
        """
        if not candidate.is_complete:
            raise ValueError(f"Incomplete candidate transaction: {candidate.raw_source!r}")

        direction = candidate.direction
        if direction is None:
            if candidate.amount < 0:
                direction = Direction.DISBURSEMENT
            else:
                direction = GENERIC.infer_direction(candidate.description)

        result = self.classify(candidate.description, direction)
        return Transaction(
            date=candidate.date,
            description=candidate.description,
            amount=abs(candidate.amount),
            direction=direction,
            category=result.code,
            sub_category=result.sub_category,
            confidence=result.confidence,
            check_number=candidate.check_number,
            source_tag=candidate.source_tag,
        )

    def categorize_all(self, candidates: Iterable[CandidateTransaction]) -> List[Transaction]:
        transactions = []
        for candidate in candidates:
            if not candidate.is_complete:
                self.logger.debug(f"Skipping incomplete candidate: {candidate.raw_source!r}")
                continue
            transactions.append(self.categorize(candidate))

        self.logger.info(f"Categorized {len(transactions)} transactions")
        return transactions
