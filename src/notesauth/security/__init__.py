# Token, PKCE and scope primitives shared by the AS and the RS.
