# LeaveCore - Replacement-leave eligibility and leave approval engine

__version__ = "0.1.0"
