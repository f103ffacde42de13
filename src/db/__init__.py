# Persistence layer
