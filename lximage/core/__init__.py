"""Pipeline core: collaborators, stage machine, and the build controller."""
