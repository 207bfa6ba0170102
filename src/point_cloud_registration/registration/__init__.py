"""
Registration Module

This module provides ICP (Iterative Closest Point) registration: correspondence
evaluation, pluggable transform estimators and the iterative driver.
"""

from .correspondence import CorrespondenceEvaluator, SearchMethod, evaluate_registration
from .estimation import (
    TransformationEstimation,
    TransformationEstimationPointToPoint,
    TransformationEstimationPointToPlane,
    get_estimation,
)
from .icp import ICPRegistration, TransformUpdatePolicy, registration_icp
from .result import ICPConvergenceCriteria, RegistrationResult, TerminationReason
from .robust_kernels import (
    CauchyLoss,
    HuberLoss,
    L2Loss,
    RobustKernel,
    TukeyLoss,
    get_robust_kernel,
)

__all__ = [
    "CorrespondenceEvaluator",
    "SearchMethod",
    "evaluate_registration",
    "TransformationEstimation",
    "TransformationEstimationPointToPoint",
    "TransformationEstimationPointToPlane",
    "get_estimation",
    "ICPRegistration",
    "TransformUpdatePolicy",
    "registration_icp",
    "ICPConvergenceCriteria",
    "RegistrationResult",
    "TerminationReason",
    "RobustKernel",
    "L2Loss",
    "HuberLoss",
    "CauchyLoss",
    "TukeyLoss",
    "get_robust_kernel",
]
