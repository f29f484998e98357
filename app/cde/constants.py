"""
Central constants for the CDE lifecycle engine (picklists, audit event names).
"""
from __future__ import annotations


class AUDIT_EVENTS:
    # Documents
    UPLOAD = "UPLOAD"
    STATUS = "STATUS"
    DOC_VERSION_CREATED = "DOC_VERSION_CREATED"
    DOC_REVISION_UPGRADED = "DOC_REVISION_UPGRADED"
    # Mail
    MAIL_CREATED = "MAIL_CREATED"
    MAIL_RESPONDED = "MAIL_RESPONDED"
    MAIL_CLOSED = "MAIL_CLOSED"
    # Issues
    ISSUE_RAISED = "ISSUE_RAISED"
    ISSUE_STATUS = "ISSUE_STATUS"
    # Workflows
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    WORKFLOW_STEP_COMPLETED = "WORKFLOW_STEP_COMPLETED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"
    WORKFLOW_STEP_NOTES = "WORKFLOW_STEP_NOTES"
    # Residents
    RESIDENT_CREATED = "RESIDENT_CREATED"
    # System
    EXPORT = "EXPORT"


# Entity type labels written to audit_events.entity_type
ENTITY_DOCUMENT = "document"
ENTITY_ISSUE = "issue"
ENTITY_MAIL = "mail"
ENTITY_WORKFLOW = "workflow"
ENTITY_RESIDENT = "resident"

# ISO 19650 document type codes
DOC_TYPES = {
    "FRA": "Fire Risk Assessment",
    "FDS": "Fire Door Schedule",
    "FSC": "Fire Stopping Certificate",
    "DWG": "Drawing",
    "RPT": "Report",
    "SPC": "Specification",
    "SCH": "Schedule",
    "CAL": "Calculation",
    "CRT": "Certificate",
    "PHO": "Photograph",
    "COR": "Correspondence",
    "MIN": "Minutes",
    "PRG": "Programme",
    "HSE": "Health & Safety",
    "QAR": "QA Record",
    "GEN": "General",
}

ISSUE_TYPES = {
    "FD-DEF": "Fire Door Defect",
    "FS-DEF": "Fire Stopping Defect",
    "CM-BRE": "Compartmentation Breach",
    "DM-DEF": "Damper Defect",
    "AOV-DEF": "AOV Defect",
    "SNG": "Snagging",
    "NCN": "Non-Conformance",
    "GEN": "General Issue",
}

MAIL_TYPES = {
    "RFI": "Request for Information",
    "SI": "Site Instruction",
    "QRY": "Query",
}

PRIORITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
DEFAULT_PRIORITY = "MEDIUM"
