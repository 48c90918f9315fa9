from familyload.services import (
    assignment_service,
    exclusion_service,
    generation_service,
    load_service,
    template_service,
)


__all__ = [
    "assignment_service",
    "exclusion_service",
    "generation_service",
    "load_service",
    "template_service",
]
