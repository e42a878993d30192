from typing import List, Optional

from src.schemas import DiagramBlock, ValidationResult

from .dialects import DialectRegistry, default_registry


class DialectValidator:
    """Applies a block's dialect rule set.

    Rules run in order. The first rule that reports problems ends the
    evaluation, and every problem that rule found is returned.
    """

    def __init__(self, registry: Optional[DialectRegistry] = None):
        self.registry = registry or default_registry()

    def validate(self, block: DiagramBlock) -> ValidationResult:
        dialect = self.registry.get(block.dialect)
        if dialect is None:
            return ValidationResult(
                valid=False, errors=[f"Unsupported diagram dialect: {block.dialect}"]
            )

        for rule in dialect.rules:
            errors = rule(block.content)
            if errors:
                return ValidationResult(valid=False, errors=list(errors))
        return ValidationResult(valid=True)

    def validate_all(self, blocks: List[DiagramBlock]) -> List[ValidationResult]:
        return [self.validate(block) for block in blocks]
