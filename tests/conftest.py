import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from hypothesis import settings

from models.data_models import EyeLandmarks

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


def eye_with_ear(ear, x0=0.0, width=30.0):
    """Six points whose EAR is exactly `ear`: both vertical pairs span ear * width."""
    h = ear * width / 2.0
    return [
        (x0, 50.0), (x0 + 10.0, 50.0 - h), (x0 + 20.0, 50.0 - h),
        (x0 + width, 50.0), (x0 + 20.0, 50.0 + h), (x0 + 10.0, 50.0 + h),
    ]


@pytest.fixture
def landmarks_for():
    """Factory fixture: ear -> EyeLandmarks with both eyes at that EAR."""
    def build(ear):
        return EyeLandmarks(left_eye=eye_with_ear(ear), right_eye=eye_with_ear(ear, x0=60.0))
    return build
