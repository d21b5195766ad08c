"""Rule modules. Importing this package registers every rule."""

from testgrade.rules import (  # noqa: F401
    ai_smells,
    assertion_quality,
    boundary_conditions,
    error_coverage,
    input_variety,
    isolation,
    naming,
    penalties,
    structure,
    testing_library,
    timing,
)
