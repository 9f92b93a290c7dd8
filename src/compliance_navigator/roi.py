"""Estimate of engineer hours saved by automated scan triage."""

from compliance_navigator.models import ROIEstimate, RunManifest

# Triage plus remediation hours per finding, by scanner
HOURS_PER_FINDING = {
    "gitleaks": 0.75,
    "npm_audit": 0.25,
    "checkov": 0.5,
}
LIKELY_MULTIPLIER = 1.8

BASIS = (
    "Conservative: triage+remediation only. "
    "Likely: includes context switching, code review, and deployment verification."
)


def calculate_roi(manifest: RunManifest) -> ROIEstimate:
    """Hours saved for the run's real findings; synthetic findings count zero."""
    breakdown: dict[str, float] = {}
    for scanner, count in sorted(manifest.counts_by_scanner().items()):
        breakdown[scanner] = round(count * HOURS_PER_FINDING.get(scanner, 0.0), 2)

    conservative = round(sum(breakdown.values()), 2)
    return ROIEstimate(
        conservative_hours=conservative,
        likely_hours=round(conservative * LIKELY_MULTIPLIER, 2),
        basis=BASIS,
        breakdown=breakdown,
    )
