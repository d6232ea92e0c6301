"""Runtime components: session coordination and scheduling."""
