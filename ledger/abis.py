"""
abis.py — The contract ABI fragments the sync layer reads and writes.
Only the functions and events used here are declared.
"""

from ledger.base import DISPUTE_DAO, JOB_FACTORY, PROOF_OF_WORK_JOB, REPUTATION_SYSTEM


def _function(name, inputs=(), outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def _event(name, inputs):
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": indexed} for n, t, indexed in inputs],
    }


JOB_FACTORY_ABI = [
    _function("getAllJobs", outputs=[("", "address[]")]),
    _function("disputeDAOAddress", outputs=[("", "address")]),
    _event("JobCreated", [
        ("jobId", "uint256", True),
        ("employer", "address", True),
        ("jobAddress", "address", False),
    ]),
]

PROOF_OF_WORK_JOB_ABI = [
    _function("employer", outputs=[("", "address")]),
    _function("title", outputs=[("", "string")]),
    _function("description", outputs=[("", "string")]),
    _function("payType", outputs=[("", "uint8")]),
    _function("weeklyPay", outputs=[("", "uint256")]),
    _function("totalPay", outputs=[("", "uint256")]),
    _function("durationWeeks", outputs=[("", "uint256")]),
    _function("positions", outputs=[("", "uint256")]),
    _function("createdAt", outputs=[("", "uint256")]),
    _function("jobCancelled", outputs=[("", "bool")]),
    _function("lastPayoutAt", outputs=[("", "uint256")]),
    _function("payoutsMade", outputs=[("", "uint256")]),
    _function("getAssignedWorkers", outputs=[("", "address[]")]),
    _function("getAllApplicants", outputs=[("", "address[]")]),
    _function("getApplicant", inputs=[("applicant", "address")], outputs=[
        ("applicant", "address"),
        ("application", "string"),
        ("appliedAt", "uint256"),
        ("isActive", "bool"),
    ]),
    _function("isWorker", inputs=[("account", "address")], outputs=[("", "bool")]),
    _function("getTotalApplications", outputs=[("", "uint256")]),
    _function("tags", inputs=[("index", "uint256")], outputs=[("", "string")]),
    _function("reputation", outputs=[("", "address")]),
    _function("disputeDAO", outputs=[("", "address")]),
]

REPUTATION_SYSTEM_ABI = [
    _function("getAverageRating", inputs=[("user", "address")], outputs=[
        ("average", "uint256"),
        ("totalRatings", "uint256"),
    ]),
]

DISPUTE_DAO_ABI = [
    _function("getDisputeCount", outputs=[("", "uint256")]),
    _function("getDisputeSummary", inputs=[("disputeId", "uint256")], outputs=[
        ("job", "address"),
        ("initiator", "address"),
        ("resolved", "bool"),
        ("votesFor", "uint256"),
        ("votesAgainst", "uint256"),
        ("reason", "string"),
    ]),
    _function("createDispute", inputs=[("job", "address"), ("reason", "string")], mutability="nonpayable"),
    _function("vote", inputs=[("disputeId", "uint256"), ("supportWorker", "bool")], mutability="nonpayable"),
    _event("DisputeCreated", [
        ("disputeId", "uint256", True),
        ("job", "address", True),
        ("initiator", "address", False),
    ]),
]

ABIS = {
    JOB_FACTORY: JOB_FACTORY_ABI,
    PROOF_OF_WORK_JOB: PROOF_OF_WORK_JOB_ABI,
    REPUTATION_SYSTEM: REPUTATION_SYSTEM_ABI,
    DISPUTE_DAO: DISPUTE_DAO_ABI,
}
