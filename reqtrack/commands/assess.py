"""
req assess - Record a coverage assessment on a requirement.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from reqtrack.lib import validate
from reqtrack.lib.config import Config
from reqtrack.lib.store import RequirementValidationError, load_requirement, save_requirement
from reqtrack.lib.types import AIAssessment


def cmd_assess(args, cwd: Path, config: Config) -> int:
    """Store {sufficient, notes} from --result as the requirement's assessment."""
    try:
        data = json.loads(args.result)
        validate.validate(data, "assessment")
    except (json.JSONDecodeError, validate.ValidationError) as e:
        print("ERROR: Invalid --result format.", file=sys.stderr)
        print('Expected: --result \'{"sufficient": true, "notes": "..."}\'', file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1

    try:
        requirement = load_requirement(cwd, args.requirement)
    except RequirementValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if requirement is None:
        print(f"ERROR: Requirement not found: {args.requirement}", file=sys.stderr)
        return 1

    requirement.ai_assessment = AIAssessment(
        sufficient=data["sufficient"],
        notes=data["notes"],
        assessed_at=datetime.now(timezone.utc).isoformat(),
    )
    save_requirement(cwd, requirement)

    print("Assessment updated:")
    print(f"  Requirement: {requirement.path}")
    print(f"  Sufficient: {requirement.ai_assessment.sufficient}")
    print(f"  Notes: {requirement.ai_assessment.notes}")
    return 0
