"""Collection names shared by the workflows."""

INVITATIONS = "invitations"
INVITATIONS_PUBLIC_VIEW = "invitationsPublicView"
USERNAMES = "usernames"
USERS = "users"
TEAMS = "teams"
MILE_LOGS = "mileLogs"
WEEKLY_USER_STATS = "weeklyStats"
WEEKLY_TEAM_STATS = "weeklyTeamStats"

# Fields with a per-value membership index, so equality filters on them
# read only the matching documents.
EQUALITY_INDEXES: dict[str, tuple[str, ...]] = {
    WEEKLY_USER_STATS: ("weekId",),
    WEEKLY_TEAM_STATS: ("weekId",),
}
