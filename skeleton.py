from keypoints import Joint

# Bones drawn between tracked joints.
BONES = (
    (Joint.LEFT_SHOULDER.key, Joint.RIGHT_SHOULDER.key),  # Shoulders
    (Joint.LEFT_SHOULDER.key, Joint.LEFT_ELBOW.key),  # Left arm
    (Joint.LEFT_ELBOW.key, Joint.LEFT_WRIST.key),
    (Joint.RIGHT_SHOULDER.key, Joint.RIGHT_ELBOW.key),  # Right arm
    (Joint.RIGHT_ELBOW.key, Joint.RIGHT_WRIST.key),
    (Joint.LEFT_HIP.key, Joint.RIGHT_HIP.key),  # Hips
    (Joint.LEFT_SHOULDER.key, Joint.LEFT_HIP.key),  # Torso
    (Joint.RIGHT_SHOULDER.key, Joint.RIGHT_HIP.key),
    (Joint.LEFT_HIP.key, Joint.LEFT_KNEE.key),  # Left leg
    (Joint.RIGHT_HIP.key, Joint.RIGHT_KNEE.key),  # Right leg
    (Joint.LEFT_KNEE.key, Joint.LEFT_ANKLE.key),
    (Joint.RIGHT_KNEE.key, Joint.RIGHT_ANKLE.key),
)


def bones():
    """Return the constant bone table as (joint, joint) name pairs."""
    return BONES
