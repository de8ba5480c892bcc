"""Learning from user corrections: signatures, profiles, matching, replay."""
