"""Protocol Forum: votes, scores and real-time presence."""
