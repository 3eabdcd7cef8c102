"""Preview applications.

Resolves the complete set of services an application has to run and hands
them to a container backend:
 - services requested by the caller
 - replicas of the ``master`` application's services the caller did not override
 - application companions rendered from configured templates
"""
