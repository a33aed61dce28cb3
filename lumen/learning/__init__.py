"""Learning flow state machine and language-model grading."""
