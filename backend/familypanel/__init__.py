"""Family Panel API: parent and kid sign-in for the household chore board."""
