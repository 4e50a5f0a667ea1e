"""User-facing error strings shared by services, endpoints and tests."""


class AuthMessages:
    INVALID_CREDENTIALS = "Incorrect email or password"
    ACCOUNT_PENDING = "Account is awaiting administrator approval"
    ACCOUNT_REJECTED = "Account request was rejected"
    ACCOUNT_SUSPENDED = "Account is suspended"
    ORGANIZATION_SUSPENDED = "Organization is suspended"
    INVALID_TOKEN = "Could not validate credentials"
    EMAIL_TAKEN = "Email already registered"
    NO_ORGANIZATION = "User is not assigned to an organization"


class OrganizationMessages:
    NOT_FOUND = "Organization not found"
    SUPER_ADMIN_REQUIRED = "Only super admins can manage organizations"
    ADMIN_REQUIRED = "Organization admin role required"
    ALREADY_SUSPENDED = "Organization is already suspended"
    NOT_SUSPENDED = "Organization is not suspended"
    NAME_REQUIRED = "Organization name is required"


class UserMessages:
    NOT_FOUND = "User not found"
    ADMIN_REQUIRED = "Admin role required"
    CANNOT_MANAGE = "You can only manage users with lower privileges than your own"
    CANNOT_ASSIGN_ROLE = "You can only assign roles with lower privileges than your own"
    CROSS_ORGANIZATION = "User belongs to a different organization"
    CANNOT_MANAGE_SELF = "You cannot change your own role or status"
    NOT_PENDING = "Only pending users can be approved or rejected"
    INVALID_STATUS = "Status must be approved or suspended"
    ORGANIZATION_REQUIRED = "An organization is required to approve this user"
    HAS_RECORDS = "User still owns records and cannot be deleted"
    INVITATION_REJECTED = "Invitation could not be used"
    READ_ONLY = "Your role has read-only access"


class InvitationMessages:
    NOT_FOUND = "Invitation not found"
    INVALID = "Invalid invitation code or email"
    EXPIRED = "Invitation has expired"
    INVALID_ROLE = "Invitations may only grant user, secondary_admin or primary_admin"
    CODE_GENERATION_FAILED = "Failed to generate unique invite code"
    NOT_PENDING = "Only pending invitations can be revoked"

    @staticmethod
    def already(status: str) -> str:
        return f"Invitation has already been {status}"


class RiskMessages:
    NOT_FOUND = "Risk not found"
    CODE_EXISTS = "Risk code already exists in this organization"
    OWNER_NOT_FOUND = "New owner must be a member of the organization"
    CONTROL_NOT_FOUND = "Control not found"
    CONTROL_CODE_EXISTS = "Control code already exists in this organization"


class IncidentMessages:
    NOT_FOUND = "Incident not found"
    LINK_EXISTS = "Incident is already linked to this risk"
    LINK_NOT_FOUND = "Incident link not found"
    CODE_EXISTS = "Incident code already exists in this organization"
    CROSS_ORGANIZATION = "Incident and risk belong to different organizations"


class KRIMessages:
    NOT_FOUND = "KRI definition not found"
    ENTRY_NOT_FOUND = "KRI data entry not found"
    INVALID_THRESHOLDS = "Lower threshold must not exceed upper threshold"
    CODE_EXISTS = "KRI code already exists in this organization"


class SettingsMessages:
    LABELS_MISMATCH = "Likelihood and impact labels must match the matrix size"


class PolicyMessages:
    DENIED = "Row-level security policy denied this operation"
