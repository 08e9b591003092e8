"""Calendar dates, schedule store access and RUN conflict resolution."""
