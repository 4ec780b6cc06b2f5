from .candidates import CandidateRejected, CandidateResult, first_success
from .client import ImageSubmission, UpstreamClient, UpstreamReply
from .status import JobRecord, JobStatus, first_result_url, normalize

__all__ = [
    "CandidateRejected",
    "CandidateResult",
    "ImageSubmission",
    "JobRecord",
    "JobStatus",
    "UpstreamClient",
    "UpstreamReply",
    "first_result_url",
    "first_success",
    "normalize",
]
